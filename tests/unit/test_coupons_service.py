from storefront.coupons import service as coupons_service
from storefront.coupons.models import CustomerContext, DiscountResult, RejectionReason

from tests.factories import NOW, make_coupon, make_line

CUSTOMER = CustomerContext(user_ref="user-1")


def test_no_code_means_no_evaluation(coupon_table):
    assert coupons_service.evaluate_code("", [make_line()], CUSTOMER, now=NOW) is None
    assert coupons_service.evaluate_code(None, [make_line()], CUSTOMER, now=NOW) is None


def test_unknown_code_is_rejected_not_found(coupon_table):
    result = coupons_service.evaluate_code("NOPE", [make_line()], CUSTOMER, now=NOW)
    assert result.accepted is False
    assert result.reason == RejectionReason.NOT_FOUND


def test_lookup_is_case_insensitive_and_uses_usage_counts(coupon_table):
    coupon = make_coupon(global_usage_limit=5, per_user_usage_limit=2)
    coupon_table["coupons"]["SAVE20"] = (coupon, 4)
    coupon_table["user_usage"][("SAVE20", "user-1")] = 1

    ok = coupons_service.evaluate_code("save20", [make_line()], CUSTOMER, now=NOW)
    assert ok.accepted is True
    assert ok.discount_amount_minor == 2400

    coupon_table["user_usage"][("SAVE20", "user-1")] = 2
    limited = coupons_service.evaluate_code("save20", [make_line()], CUSTOMER, now=NOW)
    assert limited.reason == RejectionReason.USER_LIMIT_REACHED


def test_describe_rejection_and_acceptance():
    coupon = make_coupon()
    rejected = coupons_service.describe(DiscountResult.rejected(RejectionReason.EXPIRED, coupon))
    granted = coupons_service.describe(DiscountResult.granted(coupon, 2400))

    assert rejected == {
        "accepted": False,
        "discountAmountMinor": 0,
        "shippingWaived": False,
        "reason": "Expired",
        "coupon": {"code": "SAVE20", "kind": "percentage", "name": None},
    }
    assert granted["accepted"] is True
    assert granted["discountAmountMinor"] == 2400
    assert "reason" not in granted
