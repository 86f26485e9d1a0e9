# module storefront.coupons.views
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.coupons import service as coupons_service
from storefront.payments import service as payments_service
from storefront.utils.rate_limit import optional_rate_limit
from storefront.utils.security import require_user

router = APIRouter(prefix="/api/v1/coupons", tags=["Coupons API"])


class ValidateBody(BaseModel):
    code: str = ""
    items: List[Dict[str, Any]] = Field(default_factory=list)


@router.post("/validate", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def validate_coupon(body: ValidateBody, user: Dict[str, Any] = Depends(require_user)):
    """
    Aperçu du coupon sur le panier (même évaluateur que le checkout).
    Un refus n'est pas une erreur HTTP: 200 avec accepted=false et la raison.
    """
    result, lines = payments_service.preview_coupon(user, body.code, body.items)
    response = coupons_service.describe(result)
    response["subtotalMinor"] = sum(line.line_total_minor for line in lines)
    return response
