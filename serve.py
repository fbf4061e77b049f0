#!/usr/bin/env python3
"""
Local synthesis endpoint.

    POST /synthesize     {text, language, voice, options}
                         -> {audioResourceUrl, timingMarks}
    GET  /voices         available voice shortcuts
    GET  /audio/<file>   synthesized audio

Audio is synthesized with Edge TTS and kept in the synthesis cache.

Usage: python serve.py [port]
Default port: 8000
"""

import asyncio
import json
import os
import sys
from http.server import HTTPServer, SimpleHTTPRequestHandler
from pathlib import Path
from urllib.parse import unquote, urlparse

from readaloud.speech.errors import ReadAloudError
from readaloud.speech.models import SynthesisRequest
from readaloud.speech.synthesis_cache import SynthesisCache, fingerprint
from readaloud.speech.synthesis_service import EDGE_VOICES, LANGUAGE_VOICES, EdgeSynthesisService
from readaloud.utils import logger
from readaloud.utils.config import config

MAX_TEXT_LENGTH = 3000


class SynthesisRequestHandler(SimpleHTTPRequestHandler):
    """Synthesis API plus serving of the synthesized audio files."""

    service = EdgeSynthesisService(cache_dir=config.cache_dir)
    cache = SynthesisCache(config.cache_dir, ttl_seconds=config.cache_ttl)

    def _send_json(self, status: int, payload) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def end_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        super().end_headers()

    def _send_failure(self, status: int, message: str) -> None:
        self._send_json(status, {"error": {"message": message}})

    def do_GET(self):
        route = urlparse(self.path).path
        if route == "/voices":
            self._send_json(200, {"voices": EDGE_VOICES, "languages": LANGUAGE_VOICES})
        elif route.startswith("/audio/") and len(route) > len("/audio/"):
            super().do_GET()
        else:
            self.send_error(404, "Not found")

    def do_POST(self):
        if urlparse(self.path).path != "/synthesize":
            self.send_error(404, "Not found")
            return

        try:
            length = int(self.headers.get("Content-Length", 0))
            request = SynthesisRequest.from_dict(json.loads(self.rfile.read(length)))
        except (ValueError, KeyError, TypeError) as e:
            self._send_failure(400, f"Invalid request: {e}")
            return

        if not request.text.strip():
            self._send_failure(400, "Text is required")
            return
        if len(request.text) > MAX_TEXT_LENGTH:
            self._send_failure(400, f"Text exceeds {MAX_TEXT_LENGTH} characters")
            return

        key = fingerprint(self.service.service_id, request)
        result = self.cache.get(key)
        if result is None:
            try:
                result = asyncio.run(self.service.synthesize(request))
            except ReadAloudError as e:
                logger.error(f"Synthesis failed: {e}")
                self._send_failure(502, str(e))
                return
            self.cache.set(key, result)

        payload = result.to_dict()
        payload["audioResourceUrl"] = f"/audio/{Path(result.audio_resource_url).name}"
        payload["cached"] = result.cached
        self._send_json(200, payload)

    def translate_path(self, path):
        name = os.path.basename(unquote(urlparse(path).path))
        return str(self.service.output_dir / name)


def main():
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8000
    server = HTTPServer(("", port), SynthesisRequestHandler)
    logger.info(f"Serving at http://localhost:{port}")
    logger.info(f"POST http://localhost:{port}/synthesize")
    logger.info("Press Ctrl+C to stop")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopped.")
        server.server_close()


if __name__ == "__main__":
    main()
