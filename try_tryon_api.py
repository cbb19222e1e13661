"""
Simple client script to exercise the budget-gated try-on API.

Usage examples:

URLs only (JSON body):
    python try_tryon_api.py \
        --human-url https://example.com/person.png \
        --garment-url https://example.com/shirt.png

Local files (multipart body):
    python try_tryon_api.py \
        --human samples/human.png \
        --garment samples/garment.png \
        --garment-type dresses

Generate the garment from a description:
    python try_tryon_api.py \
        --human-url https://example.com/person.png \
        --description "red silk midi dress with puff sleeves"
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests

BASE_URL = "http://localhost:8000"
ENDPOINT = "/api/agent/process-tryon"


def _validate_path(path: Optional[Path]) -> Optional[Path]:
    if path is None:
        return None
    rp = path.expanduser().resolve()
    if not rp.exists():
        raise FileNotFoundError(f"File does not exist: {rp}")
    return rp


def build_form_fields(
    human_url: Optional[str],
    garment_url: Optional[str],
    description: Optional[str],
    garment_type: str,
) -> Dict[str, str]:
    data: Dict[str, str] = {"garmentType": garment_type}
    if human_url:
        data["humanImageUrl"] = human_url
    if garment_url:
        data["garmentImageUrl"] = garment_url
    if description:
        data["garmentDescription"] = description
    return data


def call_tryon(
    base_url: str,
    session_id: str,
    human_path: Optional[Path],
    human_url: Optional[str],
    garment_path: Optional[Path],
    garment_url: Optional[str],
    description: Optional[str],
    garment_type: str,
) -> Tuple[int, Dict[str, Any]]:
    headers = {"x-session-id": session_id}
    url = f"{base_url.rstrip('/')}{ENDPOINT}"
    fields = build_form_fields(human_url, garment_url, description, garment_type)

    if human_path is None and garment_path is None:
        response = requests.post(url, json=fields, headers=headers, timeout=600)
        return response.status_code, response.json()

    files: List[Tuple[str, Tuple[str, Any, str]]] = []
    handles = []
    try:
        for field_name, path in (("humanImage", human_path), ("garmentImage", garment_path)):
            if path is None:
                continue
            handle = path.open("rb")
            handles.append(handle)
            files.append((field_name, (path.name, handle, "image/png")))

        response = requests.post(url, files=files, data=fields, headers=headers, timeout=600)
    finally:
        for handle in handles:
            handle.close()

    return response.status_code, response.json()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Test the virtual try-on API.")
    parser.add_argument("--base-url", default=BASE_URL, help="API base URL.")
    parser.add_argument(
        "--session-id",
        default=None,
        help="Session id used as the budget key (random if omitted).",
    )
    parser.add_argument("--human", type=Path, default=None, help="Path to the person image.")
    parser.add_argument("--human-url", default=None, help="URL of the person image.")
    parser.add_argument("--garment", type=Path, default=None, help="Path to the garment image.")
    parser.add_argument("--garment-url", default=None, help="URL of the garment image.")
    parser.add_argument(
        "--description",
        default=None,
        help="Garment description, used to generate a garment image when none is given.",
    )
    parser.add_argument(
        "--garment-type",
        choices=["upper_body", "lower_body", "dresses"],
        default="upper_body",
        help="Garment category.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.human is None and not args.human_url:
        print("Provide --human or --human-url.", file=sys.stderr)
        return 1
    if args.garment is None and not args.garment_url and not args.description:
        print("Provide --garment, --garment-url or --description.", file=sys.stderr)
        return 1

    session_id = args.session_id or f"session-{uuid.uuid4().hex[:12]}"
    status, body = call_tryon(
        base_url=args.base_url,
        session_id=session_id,
        human_path=_validate_path(args.human),
        human_url=args.human_url,
        garment_path=_validate_path(args.garment),
        garment_url=args.garment_url,
        description=args.description,
        garment_type=args.garment_type,
    )

    print(json.dumps(body, indent=2))
    if status != 200:
        print(f"Request failed: {status}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
