"""Send a campaign's webhook once with a sample response.

Usage:
    python -m scripts.send_test_webhook CAMPAIGN_ID             # score 10
    python -m scripts.send_test_webhook CAMPAIGN_ID --score 3   # custom score
    python -m scripts.send_test_webhook CAMPAIGN_ID --retry     # with backoff

Nothing is saved to the storage API; the response id is random.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from datetime import datetime, timezone

from nps_api.models.response import NpsResponse
from nps_api.services.http_client import close_shared_client
from nps_api.services.storage_api import StorageAPIError, get_campaign
from nps_api.services.webhook import WebhookConfigError, build_payload, dispatch_webhook

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("campaign_id")
    parser.add_argument("--score", type=int, default=10, choices=range(0, 11))
    parser.add_argument("--feedback", default="Test response")
    parser.add_argument(
        "--retry", action="store_true", help="retry recoverable failures with backoff"
    )
    return parser.parse_args(argv)


async def main(argv: list[str]) -> int:
    args = _parse_args(argv)

    try:
        campaign = await get_campaign(args.campaign_id)
    except StorageAPIError as e:
        print(f"Could not load campaign: {e}")
        return 1
    if campaign is None:
        print(f"Campaign {args.campaign_id} not found")
        return 1

    automation = campaign.automation
    if automation is None or not automation.action.sends_webhook:
        print("Campaign has no webhook automation configured")
        return 1
    if not automation.enabled:
        print("Warning: automation is disabled for this campaign; sending anyway")

    response = NpsResponse(
        id=str(uuid.uuid4()),
        campaign_id=campaign.id,
        score=args.score,
        feedback=args.feedback,
        source_id=campaign.default_source_id,
        group_id=campaign.default_group_id,
        created_at=datetime.now(timezone.utc),
        form_responses={"feedback": args.feedback},
    )

    try:
        payload = build_payload(response, automation)
    except WebhookConfigError as e:
        print(f"Configuration error: {e}")
        return 1
    print(f"POST {automation.webhook_url}")
    print(json.dumps(payload, indent=2))

    result = await dispatch_webhook(response, automation, auto_retry=args.retry)

    print("\nAttempts:")
    for attempt in result.attempts:
        status = attempt.status_code if attempt.status_code is not None else "-"
        print(f"  #{attempt.attempt}  {attempt.outcome.value:<12} {status}  {attempt.error}")
    return 0 if result.succeeded else 2


async def _run(argv: list[str]) -> int:
    try:
        return await main(argv)
    finally:
        await close_shared_client()


if __name__ == "__main__":
    sys.exit(asyncio.run(_run(sys.argv[1:])))
