"""Reference consumer endpoint for outbound webhooks.

Shows what a receiver has to do (check ``X-Webhook-Signature`` over the raw
body with the secret it was given at creation, drop repeated ``X-Event-ID``s)
and doubles as a configurable target for integration tests.
"""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Self

from src.utils.crypto import verify_raw_signature
from src.utils.http import read_content_length


class _ReceiverHandler(BaseHTTPRequestHandler):
    def _reply(self, code: int, body: dict | None = None) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        if body is not None:
            self.wfile.write(json.dumps(body).encode())

    def do_POST(self):
        content_length = read_content_length(self.headers)
        if content_length is None:
            self._reply(400, {"error": "invalid Content-Length"})
            return
        body = self.rfile.read(content_length)
        config = self.server.config  # type: ignore[attr-defined]

        with config["lock"]:
            config["attempts"] += 1
            delay = config["response_delay"]
            scripted = config["scripted_codes"].pop(0) if config["scripted_codes"] else None
        if delay > 0:
            time.sleep(delay)

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, ValueError):
            self._reply(400, {"error": "invalid JSON"})
            return

        if config["signature_secret"]:
            signature = self.headers.get("X-Webhook-Signature", "")
            if not signature:
                self._reply(401, {"error": "missing signature"})
                return
            if not verify_raw_signature(body, config["signature_secret"], signature):
                self._reply(401, {"error": "invalid signature"})
                return

        code = scripted if scripted is not None else config["response_code"]
        if not 200 <= code < 300:
            self._reply(code, {"error": "simulated failure"})
            return

        event_id = self.headers.get("X-Event-ID", "")
        with config["lock"]:
            if config["idempotency_enabled"] and event_id in config["processed_event_ids"]:
                duplicate = True
            else:
                duplicate = False
                config["received"].append({
                    "event_id": event_id,
                    "payload": payload,
                    "headers": dict(self.headers),
                    "raw_body": body,
                })
                if event_id:
                    config["processed_event_ids"].add(event_id)

        self._reply(code, {"status": "already_processed" if duplicate else "ok"})

    def log_message(self, format, *args):
        pass


class EndpointReceiver:
    """Threaded HTTP endpoint that records verified webhook deliveries."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0, secret: str | None = None):
        self._host = host
        self._port = port
        self._config = {
            "response_code": 200,
            "response_delay": 0.0,
            "scripted_codes": [],
            "signature_secret": secret,
            "idempotency_enabled": False,
            "attempts": 0,
            "received": [],
            "processed_event_ids": set(),
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def set_response_code(self, code: int) -> Self:
        self._config["response_code"] = code
        return self

    def script_responses(self, *codes: int) -> Self:
        """Answer the next requests with these codes, then fall back to the default."""
        with self._config["lock"]:
            self._config["scripted_codes"].extend(codes)
        return self

    def set_response_delay(self, seconds: float) -> Self:
        self._config["response_delay"] = seconds
        return self

    def enable_signature_verification(self, secret: str) -> Self:
        self._config["signature_secret"] = secret
        return self

    def enable_idempotency(self) -> Self:
        self._config["idempotency_enabled"] = True
        return self

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ReceiverHandler)
        self._server.config = self._config  # type: ignore[attr-defined]
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/webhook"

    @property
    def port(self) -> int:
        return self._port

    @property
    def attempt_count(self) -> int:
        with self._config["lock"]:
            return self._config["attempts"]

    def get_received(self) -> list[dict]:
        with self._config["lock"]:
            return list(self._config["received"])

    def get_processed_count(self) -> int:
        with self._config["lock"]:
            return len(self._config["received"])

    def was_event_processed(self, event_id: str) -> bool:
        with self._config["lock"]:
            return event_id in self._config["processed_event_ids"]

    def clear(self) -> None:
        with self._config["lock"]:
            self._config["attempts"] = 0
            self._config["received"].clear()
            self._config["processed_event_ids"].clear()
            self._config["scripted_codes"].clear()
