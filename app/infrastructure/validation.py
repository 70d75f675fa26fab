from typing import Dict, Optional, Tuple

MAX_SMS_BODY = 1600  # Twilio's concatenated SMS limit


class RequestValidator:
    @staticmethod
    def validate_sms_message(data: Dict) -> Tuple[bool, Optional[str]]:
        for field in ("Body", "From"):
            if not data.get(field):
                return False, f"Missing required field: {field}"

        if not str(data["From"]).strip():
            return False, "Missing required field: From"

        if len(data["Body"]) > MAX_SMS_BODY:
            return False, "Message too long"

        return True, None

    @staticmethod
    def validate_test_message(data: Dict) -> Tuple[bool, Optional[str]]:
        if not data.get("message") or not data.get("phoneNumber"):
            return False, "Missing message or phone number"
        return True, None
