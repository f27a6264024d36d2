import uuid

import pytest

from core.exceptions import ValidationError
from core.helpers import parse_uuid


def test_accepts_uuid_and_string():
    value = uuid.uuid4()

    assert parse_uuid(value) is value
    assert parse_uuid(str(value)) == value


@pytest.mark.parametrize("value", [None, "", "not-a-uuid", 42])
def test_rejects_malformed(value):
    with pytest.raises(ValidationError) as exc_info:
        parse_uuid(value, "order_id")

    assert exc_info.value.error_code == "VALIDATION_ERROR"
    assert "order_id" in exc_info.value.message
