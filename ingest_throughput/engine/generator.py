"""
Synthetic record generation.

Each record carries a compact JSON `text` blob grown to a target byte size by
appending filler entries to a base page snapshot. Sizes are tracked
incrementally: appending `"key":value` to a compact JSON object adds exactly
`len(',"key":' + json(value))` bytes, so the blob is serialized once at the
end instead of once per step.
"""

from __future__ import annotations

import json
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ingest_throughput.domain.models import Record

TEXT_TYPES = (
    "alt",
    "backgroundImageUrl",
    "href",
    "imgSrc",
    "innerHTML",
    "innerText",
    "outerHTML",
    "title",
)

SAMPLE_PRODUCTS: List[Dict[str, Any]] = [
    {
        "name": "Wireless Bluetooth Headphones",
        "price": 89.99,
        "rating": 4.5,
        "reviews": 1247,
        "features": ["Noise Cancelling", "40hr Battery", "Quick Charge", "Touch Controls"],
        "colors": ["Black", "White", "Blue", "Red"],
        "inStock": True,
    },
    {
        "name": "Smart Fitness Watch",
        "price": 199.99,
        "rating": 4.3,
        "reviews": 892,
        "features": ["Heart Rate Monitor", "GPS", "Water Resistant", "Sleep Tracking"],
        "colors": ["Silver", "Black", "Rose Gold"],
        "inStock": True,
    },
    {
        "name": "Portable Power Bank",
        "price": 49.99,
        "rating": 4.7,
        "reviews": 2156,
        "features": ["20000mAh", "Fast Charging", "Multiple Ports", "LED Display"],
        "colors": ["Black", "White"],
        "inStock": False,
    },
    {
        "name": "Bluetooth Speaker",
        "price": 129.99,
        "rating": 4.4,
        "reviews": 743,
        "features": ["360 Sound", "Waterproof", "20hr Battery", "Party Mode"],
        "colors": ["Black", "Blue", "Red"],
        "inStock": True,
    },
]

SAMPLE_CUSTOMERS: List[Dict[str, str]] = [
    {"id": "CUST001", "name": "John Smith", "email": "john.smith@email.com", "tier": "Premium"},
    {"id": "CUST002", "name": "Sarah Johnson", "email": "sarah.j@email.com", "tier": "Gold"},
    {"id": "CUST003", "name": "Mike Davis", "email": "mike.davis@email.com", "tier": "Silver"},
    {"id": "CUST004", "name": "Lisa Wilson", "email": "lisa.w@email.com", "tier": "Premium"},
]

SAMPLE_ORDERS: List[Dict[str, Any]] = [
    {"orderId": "ORD001", "status": "Shipped", "total": 299.97, "items": 3},
    {"orderId": "ORD002", "status": "Delivered", "total": 149.98, "items": 2},
    {"orderId": "ORD003", "status": "Processing", "total": 89.99, "items": 1},
    {"orderId": "ORD004", "status": "Cancelled", "total": 79.99, "items": 1},
]

# Independent probabilities for sparse columns.
P_TARGET_NOT_FOUND = 0.1
P_DETECTED_CHANGE = 0.2
P_COMPARED_TO_TEXT_ID = 0.2
P_COMPARED_TO_RECORDING = 0.3
P_LIST_ID = 0.3
P_LIST_ITEM_INDEX = 0.3
P_LIST_PAGE_NUMBER = 0.2
P_LIST_PAGE_ITEM_INDEX = 0.2
P_ATTACHMENT_S3_KEY = 0.1
P_ATTACHMENT_MIME_TYPE = 0.1

# Hard stop on filler steps; a 100 KiB target needs well under 100.
MAX_FILLER_STEPS = 10_000

_COMPACT = (",", ":")


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=_COMPACT)


def _uuid(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _base_snapshot(rng: random.Random) -> Dict[str, Any]:
    return {
        "timestamp": _now_iso(),
        "sessionId": _uuid(rng),
        "pageUrl": f"https://example.com/products/{rng.randrange(1000)}",
        "userAgent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
        "viewport": {"width": 1920, "height": 1080},
        "products": SAMPLE_PRODUCTS,
        "customers": SAMPLE_CUSTOMERS,
        "orders": SAMPLE_ORDERS,
        "analytics": {
            "pageLoadTime": rng.random() * 3000 + 500,
            "timeOnPage": rng.random() * 300 + 30,
            "scrollDepth": rng.random() * 100,
            "clicks": rng.randrange(20),
            "formInteractions": rng.randrange(5),
        },
        "metadata": {
            "language": "en-US",
            "timezone": "America/New_York",
            "screenResolution": "1920x1080",
            "colorDepth": 24,
            "pixelRatio": 2,
        },
    }


def _filler_value(rng: random.Random) -> Dict[str, Any]:
    return {
        "id": _uuid(rng),
        "value": rng.random() * 1000,
        "description": (
            f"This is a detailed description for field {rng.randrange(1000)} with additional "
            "context and information that helps to increase the overall size of the JSON data "
            "structure."
        ),
        "tags": [f"tag_{rng.randrange(100)}" for _ in range(rng.randint(1, 10))],
        "nested": {
            "level1": {
                "level2": {
                    "level3": {
                        "finalValue": f"Deep nested value {rng.randrange(1000)}",
                        "timestamp": _now_iso(),
                        "metadata": {
                            "source": "generated",
                            "version": "1.0.0",
                            "checksum": _uuid(rng).replace("-", ""),
                        },
                    }
                }
            }
        },
        "arrayData": [
            {
                "itemId": _uuid(rng),
                "score": rng.random() * 100,
                "category": f"category_{rng.randrange(50)}",
                "attributes": {
                    "color": f"#{rng.randrange(16777215):06x}",
                    "size": rng.randrange(100),
                    "weight": rng.random() * 10,
                    "active": rng.random() > 0.5,
                },
            }
            for _ in range(rng.randint(5, 24))
        ],
    }


def build_text_blob(target_bytes: int, rng: Optional[random.Random] = None) -> str:
    """
    Build a compact JSON document of at least `target_bytes` bytes.

    Filler entries are appended while the document is still below the
    target, so the result overshoots by less than its last entry.
    """
    rng = rng or random.Random()
    document = _base_snapshot(rng)
    size = len(_dumps(document).encode("utf-8"))

    step = 0
    while size < target_bytes and step < MAX_FILLER_STEPS:
        key = f"extraField_{step}"
        value = _filler_value(rng)
        # leading comma + quoted key + colon + value
        size += 1 + len(_dumps(key).encode("utf-8")) + 1 + len(_dumps(value).encode("utf-8"))
        document[key] = value
        step += 1

    return _dumps(document)


def generate_record(
    size_range: Tuple[int, int],
    rng: Optional[random.Random] = None,
) -> Record:
    """
    Produce one record whose `text` blob lands in `size_range` (bytes).
    """
    rng = rng or random.Random()
    low, high = size_range
    text = build_text_blob(rng.randint(low, high), rng)

    return Record(
        task_id=_uuid(rng),
        step_index=rng.randrange(10),
        name=f"field_{rng.randrange(1000)}",
        text=text,
        target_not_found=rng.random() < P_TARGET_NOT_FOUND,
        detected_change=rng.random() < P_DETECTED_CHANGE,
        compared_to_text_id=_uuid(rng) if rng.random() < P_COMPARED_TO_TEXT_ID else None,
        compared_to_recording=rng.random() < P_COMPARED_TO_RECORDING,
        list_id=_uuid(rng) if rng.random() < P_LIST_ID else None,
        list_item_index=rng.randrange(100) if rng.random() < P_LIST_ITEM_INDEX else None,
        list_page_number=rng.randint(1, 10) if rng.random() < P_LIST_PAGE_NUMBER else None,
        list_page_item_index=rng.randrange(50) if rng.random() < P_LIST_PAGE_ITEM_INDEX else None,
        attachment_s3_key=(
            f"attachments/{_uuid(rng)}.txt" if rng.random() < P_ATTACHMENT_S3_KEY else None
        ),
        attachment_mime_type="text/plain" if rng.random() < P_ATTACHMENT_MIME_TYPE else None,
        type=rng.choice(TEXT_TYPES),
    )


def generate_batch(
    size_range: Tuple[int, int], count: int, rng: Optional[random.Random] = None
) -> List[Record]:
    rng = rng or random.Random()
    return [generate_record(size_range, rng) for _ in range(count)]


def calculate_data_size_mb(records: Sequence[Record]) -> float:
    """Size of the batch serialized as a JSON array, in MiB."""
    payload = "[" + ",".join(r.model_dump_json(by_alias=True) for r in records) + "]"
    return len(payload.encode("utf-8")) / (1024 * 1024)


__all__ = [
    "TEXT_TYPES",
    "build_text_blob",
    "calculate_data_size_mb",
    "generate_batch",
    "generate_record",
]
