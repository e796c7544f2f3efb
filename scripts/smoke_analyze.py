#!/usr/bin/env python3
"""Post a local image to a running server and print provider health + analysis."""
import argparse
import base64
import json
import mimetypes
import os
import sys
from typing import Any, Dict

import requests

API = os.getenv("API_URL", "http://localhost:4000")


def jprint(label: str, obj: Any):
    print(f"{label}: {json.dumps(obj, ensure_ascii=False)}")


def key_headers() -> Dict[str, str]:
    headers = {}
    for env, header in (
        ("GEMINI_API_KEY", "x-gemini-key"),
        ("OPENROUTER_API_KEY", "x-openrouter-key"),
        ("HUGGINGFACE_API_KEY", "x-huggingface-key"),
    ):
        if os.getenv(env):
            headers[header] = os.environ[env]
    token = os.getenv("API_AUTH_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def image_data_uri(path: str) -> str:
    mime = mimetypes.guess_type(path)[0] or "image/jpeg"
    with open(path, "rb") as f:
        data = base64.b64encode(f.read()).decode("ascii")
    return f"data:{mime};base64,{data}"


def run() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("image", help="path to a jpeg/png/gif/webp file")
    ap.add_argument(
        "--type", default="analyze", choices=["analyze", "regenerate_caption"]
    )
    ap.add_argument(
        "--skip-providers", action="store_true", help="do not call /ai/providers"
    )
    args = ap.parse_args()

    if not os.path.exists(args.image):
        raise FileNotFoundError(f"missing image: {args.image}")

    headers = key_headers()
    print(f"[cfg] API={API} header_keys={sorted(h for h in headers if h.startswith('x-'))}")

    if not args.skip_providers:
        r = requests.get(f"{API}/ai/providers", headers=headers, timeout=30)
        r.raise_for_status()
        for p in r.json().get("providers", []):
            print(
                f"[provider] {p['provider']:<12} {p['status']:<16} "
                f"{p.get('latencyMs')}ms {p.get('detail', '')}"
            )

    r = requests.post(
        f"{API}/analyze-image",
        json={"imageBase64": image_data_uri(args.image), "type": args.type},
        headers=headers,
        timeout=300,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"POST /analyze-image -> {r.status_code}: {r.text}")
    result = r.json()
    jprint("[analyze]", result)
    if result.get("fallback"):
        print("[warn] every provider failed; static fallback returned")
    print("[ok] smoke finished")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(run())
    except Exception as e:
        print(f"[fail] {e}", file=sys.stderr)
        sys.exit(1)
