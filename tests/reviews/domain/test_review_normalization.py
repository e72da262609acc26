"""Tests for the normalization engine — single records, rating resolution and batch modes."""

import pytest
from reviews.errors import NormalizationFailure, ValidationFailure
from reviews.review.normalization import NormalizationOptions, normalize_review, normalize_reviews
from reviews.review.review import ANONYMOUS_GUEST, ISO_UTC_MILLIS, ReviewChannel, ReviewType
from reviews.sources import sample_reviews


def _raw(**overrides):
    defaults = {
        "id": 1,
        "listingId": 10,
        "reviewType": "guest_review",
        "channel": "airbnb",
        "rating": 9,
        "comment": "Lovely place",
        "createdAt": "2024-01-15T14:30:00Z",
        "guestName": "Jane Doe",
    }
    defaults.update(overrides)
    return defaults


def _sample(review_id):
    return next(raw for raw in sample_reviews() if raw["id"] == review_id)


# ---------------------------------------------------------------
# End-to-end on the bundled samples
# ---------------------------------------------------------------
class TestSampleRecords:
    def test_host_review_rated_from_categories(self):
        review = normalize_review(_sample(7453))
        assert review.review_type == ReviewType.HOST_REVIEW
        assert review.channel == ReviewChannel.BOOKING_COM
        assert review.rating == 10.0
        assert review.categories == {
            "cleanliness": 10.0,
            "communication": 10.0,
            "respect_house_rules": 10.0,
        }
        assert review.created_at == "2020-08-21T22:45:14.000Z"
        assert review.updated_at == review.created_at

    def test_direct_rating_wins_over_categories(self):
        review = normalize_review(_sample(7454))
        assert review.rating == 9.4
        assert review.categories == {"location": 10.0, "value_for_money": 8.0}

    def test_text_fields_are_sanitized(self):
        review = normalize_review(_sample(7454))
        assert review.guest_name == "Maria Lopez"
        assert review.comment == "Great location, spotless flat.\n\nCheck-in was easy."
        assert review.language == "en"
        assert review.approved is True

    def test_offsets_are_converted_to_utc(self):
        review = normalize_review(_sample(7454))
        assert review.created_at == "2024-01-15T12:30:00.000Z"
        assert review.updated_at == "2024-01-16T09:00:00.000Z"
        assert review.check_in_date == "2024-01-10T00:00:00.000Z"
        assert review.check_out_date == "2024-01-14T00:00:00.000Z"

    def test_invalid_category_is_excluded_from_rating(self):
        review = normalize_review(_sample(7455))
        assert review.categories == {"check_in_experience": 6.0}
        assert review.rating == 6.0
        assert review.guest_name == ANONYMOUS_GUEST
        assert review.channel == ReviewChannel.GOOGLE

    def test_loose_values_are_mapped(self):
        review = normalize_review(_sample(7456))
        assert review.review_type == ReviewType.GUEST_REVIEW
        assert review.channel == ReviewChannel.DIRECT
        assert review.rating == 8.0
        assert review.guest_name == "Tom OBrien"
        assert review.created_at == "2024-03-05T10:00:00.000Z"
        assert review.response == "Thanks Tom, hope to see you again!"
        assert review.response_date == "2024-03-06T12:00:00.000Z"

    def test_raw_record_is_kept_verbatim(self):
        raw = _sample(7456)
        review = normalize_review(raw)
        assert review.raw_json == raw
        raw["comment"] = "mutated"
        assert review.raw_json["comment"] != "mutated"

    def test_unrated_record_needs_a_default(self):
        with pytest.raises(ValidationFailure) as exc:
            normalize_review(_sample(7457))
        assert "rating" in exc.value.messages

        review = normalize_review(_sample(7457), NormalizationOptions(default_rating=5.0))
        assert review.rating == 5.0
        assert review.channel == ReviewChannel.VRBO

    def test_every_date_is_iso_utc_millis(self):
        for raw in sample_reviews():
            review = normalize_review(raw, NormalizationOptions(default_rating=5.0))
            for value in (review.created_at, review.updated_at, review.check_in_date, review.response_date):
                assert value is None or ISO_UTC_MILLIS.match(value)


# ---------------------------------------------------------------
# Rating resolution
# ---------------------------------------------------------------
class TestRatingResolution:
    def test_category_average(self):
        review = normalize_review(
            _raw(
                rating=None,
                reviewCategories=[
                    {"name": "Cleanliness", "rating": 8, "max_rating": 10},
                    {"name": "Communication", "rating": 9, "max_rating": 10},
                ],
            )
        )
        assert review.rating == 8.5

    def test_category_average_rounds_half_up(self):
        review = normalize_review(
            _raw(
                rating=None,
                reviewCategories=[
                    {"name": "Cleanliness", "rating": 8},
                    {"name": "Communication", "rating": 8.5},
                ],
            )
        )
        assert review.rating == 8.3

    def test_direct_rating_rounded_to_one_decimal(self):
        assert normalize_review(_raw(rating=8.25)).rating == 8.3
        assert normalize_review(_raw(rating="7")).rating == 7.0

    def test_out_of_range_rating_rejected(self):
        with pytest.raises(ValidationFailure):
            normalize_review(_raw(rating=11))

    def test_non_numeric_rating_rejected(self):
        with pytest.raises(ValidationFailure):
            normalize_review(_raw(rating="great"))

    def test_categories_rescaled_from_five_point_scale(self):
        review = normalize_review(
            _raw(rating=None, reviewCategories=[{"category": "Value", "rating": 4, "maxRating": 5}])
        )
        assert review.categories == {"value": 8.0}
        assert review.rating == 8.0

    def test_default_rating_outside_range_rejected(self):
        with pytest.raises(ValidationFailure):
            NormalizationOptions(default_rating=12)


# ---------------------------------------------------------------
# Required fields and fallbacks
# ---------------------------------------------------------------
class TestFieldRules:
    def test_missing_id_rejected(self):
        raw = _raw()
        del raw["id"]
        with pytest.raises(ValidationFailure):
            normalize_review(raw)

    def test_missing_listing_id_rejected(self):
        raw = _raw()
        del raw["listingId"]
        with pytest.raises(ValidationFailure):
            normalize_review(raw)

    def test_numeric_string_ids_coerced(self):
        review = normalize_review(_raw(id="42", listingId="7"))
        assert review.id == 42
        assert review.listing_id == 7

    def test_missing_created_at_rejected(self):
        raw = _raw()
        del raw["createdAt"]
        with pytest.raises(ValidationFailure) as exc:
            normalize_review(raw)
        assert "createdAt" in exc.value.messages

    def test_unparseable_date_rejected(self):
        with pytest.raises(ValidationFailure) as exc:
            normalize_review(_raw(createdAt="not a date"))
        assert "createdAt" in exc.value.messages

    def test_naive_dates_read_in_given_timezone(self):
        review = normalize_review(
            _raw(createdAt="2024-01-15 14:30:00"),
            NormalizationOptions(timezone="Europe/Paris"),
        )
        assert review.created_at == "2024-01-15T13:30:00.000Z"

    def test_unknown_type_and_channel_fall_back(self):
        review = normalize_review(_raw(reviewType="mystery", channel="expedia"))
        assert review.review_type == ReviewType.GUEST_REVIEW
        assert review.channel == ReviewChannel.OTHER

    def test_missing_guest_name_becomes_anonymous(self):
        raw = _raw()
        del raw["guestName"]
        assert normalize_review(raw).guest_name == ANONYMOUS_GUEST

    def test_approved_only_when_literally_true(self):
        assert normalize_review(_raw(approved="yes")).approved is False
        assert normalize_review(_raw(approved=True)).approved is True

    def test_non_mapping_record_rejected(self):
        with pytest.raises(ValidationFailure):
            normalize_review(["not", "a", "record"])


# ---------------------------------------------------------------
# Batch modes
# ---------------------------------------------------------------
class TestBatchNormalization:
    def test_empty_batch_succeeds(self):
        result = normalize_reviews([])
        assert result.success is True
        assert result.items == []
        assert result.processed_count == 0

    def test_permissive_skips_bad_records(self):
        bad = _raw(id=None)
        result = normalize_reviews([_raw(id=1), bad, _raw(id=3)])
        assert result.success is True
        assert [review.id for review in result.items] == [1, 3]
        assert result.processed_count == 2
        assert result.skipped_count == 1
        assert result.errors == []
        assert any(warning.startswith("Skipped review None:") for warning in result.warnings)

    def test_permissive_skips_dates_out_of_range_in_utc(self):
        result = normalize_reviews([_raw(id=1), _raw(id=2, createdAt="9999-12-31T23:00:00-02:00")])
        assert result.success is True
        assert result.processed_count == 1
        assert result.skipped_count == 1
        assert any(warning.startswith("Skipped review 2:") for warning in result.warnings)

    def test_permissive_fails_when_nothing_normalized(self):
        result = normalize_reviews([_raw(id=None), _raw(createdAt="garbage")])
        assert result.success is False
        assert result.items == []
        assert result.skipped_count == 2

    def test_strict_stops_at_first_failure(self):
        result = normalize_reviews(
            [_raw(id=1), _raw(id=2, rating=42), _raw(id=3)],
            NormalizationOptions(strict=True),
        )
        assert result.success is False
        assert [review.id for review in result.items] == [1]
        assert result.skipped_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to normalize review 2:")
        assert isinstance(result.failure, NormalizationFailure)
        assert result.failure.record_id == 2

    def test_record_warnings_are_attributed(self):
        result = normalize_reviews([_raw(id=5, channel="carrier pigeon")])
        assert result.success is True
        assert any(warning.startswith("Review 5: Unknown channel") for warning in result.warnings)

    def test_samples_with_default_rating_all_normalize(self):
        result = normalize_reviews(sample_reviews(), NormalizationOptions(default_rating=5.0))
        assert result.processed_count == 5
        assert result.skipped_count == 0
