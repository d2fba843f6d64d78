"""
Diagnostics Helper Tests
"""

from datetime import datetime

from snapadmin.diagnostics import (
    fingerprint,
    mask_last,
    safe_preview_json,
    safe_string,
    summarize_accounts_response,
)


class TestFingerprint:
    def test_format(self):
        value = fingerprint("consumer-key")

        assert value.startswith("sha256:")
        assert len(value) == len("sha256:") + 12
        assert "consumer-key" not in value

    def test_stable(self):
        assert fingerprint("abc") == fingerprint("abc")
        assert fingerprint("abc") != fingerprint("abd")

    def test_empty(self):
        assert fingerprint("") is None
        assert fingerprint(None) is None


class TestMaskLast:
    def test_keeps_tail(self):
        assert mask_last("abcdefgh") == "****efgh"
        assert mask_last("abcdefgh", keep=6) == "**cdefgh"

    def test_short_values_fully_masked(self):
        assert mask_last("abc") == "***"

    def test_empty(self):
        assert mask_last("") is None


class TestSafeString:
    def test_values(self):
        assert safe_string(None) is None
        assert safe_string("x") == "x"
        assert safe_string({"a": 1}) == '{"a": 1}'
        assert safe_string({1, 2}).startswith("{")


class TestSafePreviewJson:
    def test_short_payload(self):
        assert safe_preview_json({"a": 1}) == '{\n  "a": 1\n}'

    def test_truncates(self):
        preview = safe_preview_json(["x" * 100], max_len=20)

        assert preview.startswith('[\n  "xxxxxxxxxxxxxx')
        assert "truncated" in preview

    def test_non_json_values_use_str(self):
        assert "2026-01-15 00:00:00" in safe_preview_json({"when": datetime(2026, 1, 15)})


class TestSummarizeAccountsResponse:
    def test_list(self):
        summary = summarize_accounts_response([
            {"brokerageAccountId": "b-1", "accountName": "IRA"},
            {"id": "x"},
        ])

        assert summary == {
            "kind": "array",
            "count": 2,
            "firstKeys": ["brokerageAccountId", "accountName"],
            "firstId": "b-1",
            "firstName": "IRA",
        }

    def test_list_of_scalars(self):
        summary = summarize_accounts_response(["acc-1"])

        assert summary["firstKeys"] is None
        assert summary["firstId"] is None

    def test_object(self):
        assert summarize_accounts_response({"accounts": []}) == {"kind": "object", "keys": ["accounts"]}

    def test_empty(self):
        assert summarize_accounts_response([]) == {"kind": "list", "count": 0}
        assert summarize_accounts_response(None) == {"kind": "NoneType", "count": 0}
