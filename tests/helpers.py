import json
from unittest.mock import MagicMock

BASE_URL = "https://api.crowdstrike.com"


def make_response(status_code=200, body=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = body if body is not None else {}
    response.text = text if text is not None else json.dumps(body or {})
    return response


def token_response(token="fake_token", expires_in=1799):
    return make_response(201, {"access_token": token, "token_type": "bearer", "expires_in": expires_in})


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now
