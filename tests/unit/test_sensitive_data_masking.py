import pytest

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_card_number_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "card": "4111 1111 1111 1111"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4111 1111 1111 1111" not in result["card"]
        assert "***MASKED***" in result["card"]

    def test_card_number_inside_text_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "notes": "paid with 4580-1234-5678-9012 today"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4580-1234-5678-9012" not in result["notes"]
        assert result["notes"].startswith("paid with ***MASKED***")

    def test_israeli_phone_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "phone": "+972-52-123-4567"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "123-4567" not in result["phone"]
        assert "***MASKED***" in result["phone"]

    def test_password_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_non_sensitive_data_unchanged(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "item.status_updated", "order_number": "ORD-20260301-A1B2C3"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_number"] == "ORD-20260301-A1B2C3"
        assert result["event"] == "item.status_updated"

    def test_non_string_values_untouched(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "bulk_transition.completed", "succeeded": 4111111111111111}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["succeeded"] == 4111111111111111
