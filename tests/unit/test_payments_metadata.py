import json

import pytest

from storefront.payments.errors import IntentTooLarge, InvariantViolation, MalformedEvent
from storefront.payments.metadata import decode_intent, encode_intent

from tests.factories import NOW, make_line, make_order


def _lines(n, image=None, name_len=10):
    return [make_line(f"prod-{i:04d}", price=100 + i, qty=1 + i % 3, name="N" * name_len, image_ref=image)
            for i in range(n)]


def test_roundtrip_restores_priced_order():
    order = make_order(
        lines=[make_line("p1", image_ref="https://cdn.example.com/p1.png"), make_line("p2", price=1999, qty=1, category=None)],
        discount=500,
        shipping=1500,
        coupon_code="SAVE20",
    )
    metadata, intent_id = encode_intent(order, created_at=NOW)

    intent = decode_intent(metadata)

    assert intent.intent_id == intent_id
    assert intent.order == order
    assert intent.created_at == NOW


def test_metadata_respects_provider_ceiling():
    order = make_order(lines=_lines(120))
    metadata, _ = encode_intent(order, created_at=NOW)

    assert len(metadata) <= 50
    assert all(isinstance(v, str) and len(v) <= 500 for v in metadata.values())
    assert decode_intent(metadata).order == order


def test_intent_ids_are_unique():
    order = make_order()
    ids = {encode_intent(order)[1] for _ in range(20)}
    assert len(ids) == 20


def test_images_dropped_first_when_too_large():
    order = make_order(lines=_lines(40, image="https://cdn.example.com/" + "x" * 400))
    metadata, _ = encode_intent(order, created_at=NOW, max_keys=30)

    decoded = decode_intent(metadata).order
    assert all(line.image_ref is None for line in decoded.lines)
    assert [line.product_ref for line in decoded.lines] == [line.product_ref for line in order.lines]


def test_too_large_even_without_images():
    order = make_order(lines=_lines(400, name_len=60))
    with pytest.raises(IntentTooLarge):
        encode_intent(order, created_at=NOW)


@pytest.mark.parametrize("key", ["intent_id", "user_ref", "total", "items_n", "v"])
def test_missing_required_key_is_malformed(key):
    metadata, _ = encode_intent(make_order(), created_at=NOW)
    del metadata[key]
    with pytest.raises(MalformedEvent):
        decode_intent(metadata)


def test_missing_metadata_is_malformed():
    with pytest.raises(MalformedEvent):
        decode_intent(None)


def test_garbled_items_are_malformed():
    metadata, intent_id = encode_intent(make_order(), created_at=NOW)
    metadata["items_0"] = metadata["items_0"][:-3]
    with pytest.raises(MalformedEvent) as exc:
        decode_intent(metadata)
    assert exc.value.intent_id == intent_id


def test_missing_chunk_is_malformed():
    metadata, _ = encode_intent(make_order(), created_at=NOW)
    metadata["items_n"] = "2"
    with pytest.raises(MalformedEvent):
        decode_intent(metadata)


def test_unknown_version_is_malformed():
    metadata, _ = encode_intent(make_order(), created_at=NOW)
    metadata["v"] = "99"
    with pytest.raises(MalformedEvent):
        decode_intent(metadata)


def test_inconsistent_totals_are_invariant_violations():
    metadata, _ = encode_intent(make_order(), created_at=NOW)
    metadata["total"] = str(int(metadata["total"]) + 1)
    with pytest.raises(InvariantViolation):
        decode_intent(metadata)


def test_negative_line_price_rejected_as_malformed():
    metadata, _ = encode_intent(make_order(), created_at=NOW)
    lines = json.loads(metadata["items_0"])
    lines[0]["u"] = -5
    metadata["items_0"] = json.dumps(lines)
    with pytest.raises(MalformedEvent):
        decode_intent(metadata)
