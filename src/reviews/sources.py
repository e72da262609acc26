"""Raw review sources.

The upstream integration itself (authentication, retries, transport) lives
outside this service; it is injected as a zero-argument callable returning
raw records. ``sample_reviews`` is the bundled fallback used when the
upstream is unavailable or not configured. Its records deliberately mix
date formats, rating scales and channel spellings.
"""

import copy
from typing import Any

SAMPLE_REVIEWS: list[dict[str, Any]] = [
    {
        "id": 7453,
        "listingId": 101,
        "type": "host-to-guest",
        "reviewType": "host",
        "channel": "booking",
        "rating": None,
        "comment": "Shane and family are wonderful! Would definitely host again :)",
        "reviewCategories": [
            {"name": "Cleanliness", "rating": 10, "max_rating": 10},
            {"name": "Communication", "rating": 10, "max_rating": 10},
            {"name": "Respect house rules", "rating": 10, "max_rating": 10},
        ],
        "createdAt": "2020-08-21 22:45:14",
        "guestName": "Shane Finkelstein",
        "approved": False,
    },
    {
        "id": 7454,
        "listingId": 101,
        "reviewType": "guest_review",
        "channel": "Airbnb",
        "rating": 9.4,
        "comment": "Great location, spotless flat.\n\n\n\nCheck-in was easy.",
        "reviewCategories": [
            {"name": "Location", "rating": 5, "max_rating": 5},
            {"name": "Value for money", "rating": 4, "max_rating": 5},
        ],
        "createdAt": "2024-01-15T14:30:00+02:00",
        "updatedAt": "2024-01-16T09:00:00Z",
        "checkInDate": "2024-01-10",
        "checkOutDate": "2024-01-14",
        "guestName": "  Maria   <Lopez>  ",
        "language": "EN-gb",
        "approved": True,
    },
    {
        "id": 7455,
        "listingId": 102,
        "reviewType": "guest",
        "channel": "google maps",
        "comment": "Decent stay, noisy street at night.",
        "reviewCategories": [
            {"name": "Check-in Experience", "rating": 3, "max_rating": 5},
            {"name": "Noise", "rating": 6, "max_rating": 0},
        ],
        "createdAt": "2024-02-03T08:15:30.123Z",
        "guestName": "",
        "approved": False,
    },
    {
        "id": 7456,
        "listingId": 102,
        "reviewType": "system_automated_review",
        "channel": "direct booking",
        "rating": "8",
        "comment": "Booked directly, smooth process & friendly host.",
        "createdAt": "March 5, 2024 10:00 AM",
        "guestName": "Tom O'Brien",
        "response": "Thanks Tom, hope to see you again!",
        "responseDate": "2024-03-06T12:00:00Z",
        "approved": False,
    },
    {
        "id": 7457,
        "listingId": 103,
        "reviewType": "guest_review",
        "channel": "vrbo",
        "comment": "No rating given at all.",
        "createdAt": "2024-04-01T00:00:00Z",
        "guestName": "Ana",
        "approved": False,
    },
]


def sample_reviews() -> list[dict[str, Any]]:
    """Fresh copies of the bundled sample records."""
    return copy.deepcopy(SAMPLE_REVIEWS)
