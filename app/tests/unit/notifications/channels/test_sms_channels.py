"""Unit tests for the Twilio and GC Notify SMS adapters."""

from unittest.mock import patch

import jwt
import pytest
import requests

from courier.notifications.channels.sms import (
    SMS_MAX_LENGTH,
    GCNotifyAdapter,
    TwilioAdapter,
    create_jwt_token,
    format_sms,
)

TWILIO_CONFIG = {
    "account_sid": "AC123",
    "auth_token": "token",
    "from_number": "+15555550000",
}
NOTIFY_CONFIG = {
    "user_name": "service-id",
    "client_secret": "notify-secret",
    "api_url": "https://api.notification.example.com",
    "template_id": "tmpl-1",
}


@pytest.mark.unit
class TestFormatSms:
    def test_subject_prefix(self):
        assert format_sms("Alert", "BTC up") == "Alert: BTC up"

    def test_no_subject(self):
        assert format_sms("", "BTC up") == "BTC up"

    def test_truncates_long_messages(self):
        text = format_sms("", "x" * 2000)
        assert len(text) == SMS_MAX_LENGTH
        assert text.endswith("...")


@pytest.mark.unit
class TestPhoneValidation:
    @pytest.mark.parametrize("phone", ["5555550100", "+12ab", "+123", "+1234567890123456"])
    def test_rejects_bad_numbers(self, phone):
        result = TwilioAdapter(config=TWILIO_CONFIG).validate_recipient(phone)
        assert not result.is_success

    def test_accepts_e164(self):
        assert TwilioAdapter(config=TWILIO_CONFIG).validate_recipient("+15555550100").is_success


@pytest.mark.unit
class TestTwilioAdapter:
    @patch("courier.clients.http.requests.request")
    def test_send_success(self, mock_request, mock_response):
        mock_request.return_value = mock_response(status_code=201, json_data={"sid": "SM1"})

        outcome = TwilioAdapter(config=TWILIO_CONFIG).deliver("+15555550100", "Alert", "Body")

        assert outcome.success is True
        assert outcome.external_id == "SM1"
        args, kwargs = mock_request.call_args
        assert args[1] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        assert kwargs["auth"] == ("AC123", "token")
        assert kwargs["data"] == {
            "To": "+15555550100",
            "From": "+15555550000",
            "Body": "Alert: Body",
        }

    @patch("courier.clients.http.requests.request")
    def test_bad_number_is_permanent(self, mock_request):
        outcome = TwilioAdapter(config=TWILIO_CONFIG).deliver("555", "s", "b")

        assert outcome.retryable is False
        mock_request.assert_not_called()

    @patch("courier.clients.http.requests.request")
    def test_timeout_is_retryable(self, mock_request):
        mock_request.side_effect = requests.Timeout("read timed out")

        outcome = TwilioAdapter(config=TWILIO_CONFIG).deliver("+15555550100", "s", "b")

        assert outcome.retryable is True
        assert outcome.error == "twilio request timed out"

    @patch("courier.clients.http.requests.request")
    def test_server_error_is_retryable(self, mock_request, mock_response):
        mock_request.return_value = mock_response(status_code=503)

        outcome = TwilioAdapter(config=TWILIO_CONFIG).deliver("+15555550100", "s", "b")

        assert outcome.retryable is True

    @patch("courier.clients.http.requests.request")
    def test_health_check(self, mock_request, mock_response):
        mock_request.return_value = mock_response(json_data={"sid": "AC123"})

        assert TwilioAdapter(config=TWILIO_CONFIG).health_check().is_success
        assert mock_request.call_args[0][1].endswith("/Accounts/AC123.json")


@pytest.mark.unit
class TestGCNotify:
    def test_create_jwt_token(self):
        token = create_jwt_token("secret", "client")

        claims = jwt.decode(token, "secret", algorithms=["HS256"])
        assert claims["iss"] == "client"
        assert isinstance(claims["iat"], int)

    def test_create_jwt_token_requires_secret(self):
        with pytest.raises(ValueError):
            create_jwt_token("", "client")
        with pytest.raises(ValueError):
            create_jwt_token("secret", "")

    @patch("courier.clients.http.requests.request")
    def test_send_success(self, mock_request, mock_response):
        mock_request.return_value = mock_response(status_code=201, json_data={"id": "n-1"})

        outcome = GCNotifyAdapter(config=NOTIFY_CONFIG).deliver("+15555550100", "", "Hi")

        assert outcome.success
        assert outcome.external_id == "n-1"
        args, kwargs = mock_request.call_args
        assert args[1] == "https://api.notification.example.com/v2/notifications/sms"
        assert kwargs["json"] == {
            "phone_number": "+15555550100",
            "template_id": "tmpl-1",
            "personalisation": {"message": "Hi"},
        }
        assert kwargs["headers"]["Authorization"].startswith("Bearer ")

    def test_health_check(self):
        result = GCNotifyAdapter(config=NOTIFY_CONFIG).health_check()
        assert result.is_success
        assert result.data == {"api_url": NOTIFY_CONFIG["api_url"]}

    def test_health_check_not_configured(self):
        assert not GCNotifyAdapter(config={}).health_check().is_success
