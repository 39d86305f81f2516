import copy
from datetime import date, datetime

from crefy.templates import apply_template, find_template, get_templates

TODAY = date(2025, 3, 1)


def test_four_presets_available():
    ids = [t.id for t in get_templates(TODAY)]
    assert ids == [
        "template-university-tour",
        "template-crypto-conference",
        "template-anniversary",
        "template-product-launch",
    ]


def test_anniversary_reveals_a_week_later():
    template = find_template("template-anniversary", TODAY)
    assert template.nft_config["revealType"] == "DELAYED"
    assert template.nft_config["revealDate"] == "2025-03-08T00:00:00"


def test_end_date_derived_from_duration():
    merged = apply_template("template-university-tour", {"startDate": "2025-01-01T00:00:00"}, TODAY)
    assert merged["endDate"] == "2025-01-31T00:00:00"


def test_end_date_keeps_datetime_input_type():
    merged = apply_template("template-crypto-conference", {"startDate": datetime(2025, 1, 1)}, TODAY)
    assert merged["endDate"] == datetime(2025, 1, 8)


def test_explicit_end_date_wins():
    merged = apply_template(
        "template-university-tour",
        {"startDate": "2025-01-01T00:00:00", "endDate": "2025-01-05T00:00:00"},
        TODAY,
    )
    assert merged["endDate"] == "2025-01-05T00:00:00"


def test_user_values_override_template():
    data = {
        "type": "CUSTOM",
        "nftConfig": {"name": "My Tour", "symbol": None},
        "accessControl": {"accessType": "ALLOWLIST", "allowlist": []},
    }
    merged = apply_template("template-university-tour", data, TODAY)

    # the preset decides the campaign type
    assert merged["type"] == "UNIVERSITY_TOUR"
    assert merged["nftConfig"]["name"] == "My Tour"
    # None counts as not provided
    assert merged["nftConfig"]["symbol"] == "UTOUR"
    assert merged["accessControl"]["accessType"] == "ALLOWLIST"
    assert merged["accessControl"]["requiresEmail"] is True


def test_attributes_merged_by_trait_type():
    data = {"nftConfig": {"attributes": [
        {"traitType": "Year", "value": 2030},
        {"traitType": "Campus", "value": "North"},
    ]}}
    merged = apply_template("template-university-tour", data, TODAY)
    assert merged["nftConfig"]["attributes"] == [
        {"traitType": "Event", "value": "University Tour"},
        {"traitType": "Year", "value": 2030},
        {"traitType": "Campus", "value": "North"},
    ]


def test_merge_is_idempotent():
    data = {
        "name": "Tour",
        "startDate": "2025-01-01T00:00:00",
        "nftConfig": {"attributes": [{"traitType": "Campus", "value": "North"}]},
    }
    once = apply_template("template-university-tour", data, TODAY)
    twice = apply_template("template-university-tour", once, TODAY)
    assert twice == once


def test_input_not_mutated():
    data = {"nftConfig": {"name": "Mine"}, "startDate": "2025-01-01T00:00:00"}
    snapshot = copy.deepcopy(data)
    apply_template("template-product-launch", data, TODAY)
    assert data == snapshot


def test_unknown_template_returns_input():
    data = {"name": "Tour"}
    assert apply_template("template-nope", data, TODAY) is data
