from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from bemestar.settings import load_env, settings  # noqa: E402

load_env()

from bemestar.db import db_connection  # noqa: E402
from bemestar.domain.advisory import generate_advisory  # noqa: E402
from bemestar.domain.errors import BemEstarError  # noqa: E402
from bemestar.domain.scope import resolve_scope  # noqa: E402
from bemestar.logging_config import configure_logging  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the advisory pipeline for one caller and print JSON")
    parser.add_argument("caller_id", help="profile id whose scope bounds the note selection")
    parser.add_argument("--prompt", default=None, help="operator prompt forwarded to the engine")
    parser.add_argument("--days", type=int, default=None, help="note window in days")
    parser.add_argument("--mock", action="store_true", help="allow the mock provider when Bedrock is not configured")
    args = parser.parse_args()

    configure_logging(level=settings.log_level, log_file=settings.log_file)
    try:
        with db_connection() as conn:
            scope = resolve_scope(conn, args.caller_id)
            result = generate_advisory(
                conn,
                scope,
                prompt=args.prompt,
                days=args.days,
                allow_mock=args.mock or None,
            )
    except BemEstarError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    payload = {
        "scope": scope.label,
        "status": result.status,
        "reason": result.reason,
        "provider": result.provider,
        "model_id": result.model_id,
        "notes_used": result.notes_used,
        "actions": [action.model_dump() for action in result.actions],
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
