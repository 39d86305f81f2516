from crefy.schemas import CampaignCreate, CompanyCreate, validate_payload

from conftest import CONTRACT_ADDRESS, OWNER_WALLET


def campaign_data(**overrides):
    data = {
        "companyId": "c1",
        "name": "Spring Tour",
        "description": "Campus tour collectibles",
        "type": "UNIVERSITY_TOUR",
        "startDate": "2025-01-01T00:00:00Z",
        "endDate": "2025-02-01T00:00:00Z",
        "contractAddress": CONTRACT_ADDRESS,
        "contractNetwork": "sepolia",
        "nftConfig": {
            "name": "Spring Tour NFT",
            "symbol": "SPRING",
            "description": "Thanks for visiting",
            "metadataFormat": "ERC721",
            "revealType": "INSTANT",
        },
        "accessControl": {"accessType": "PUBLIC"},
        "mintLimit": 100,
    }
    data.update(overrides)
    return data


def fields(errors):
    return {e.field for e in errors}


def test_company_defaults_applied():
    company, errors = validate_payload(CompanyCreate, {"name": "Acme", "adminAddress": OWNER_WALLET})
    assert errors == []
    assert company.settings.allow_public_campaigns is True
    assert company.settings.max_campaigns_allowed == 10
    assert company.settings.default_mint_limit == 5
    assert company.branding.primary_color is None


def test_company_field_errors_use_json_names():
    _, errors = validate_payload(CompanyCreate, {
        "name": "A",
        "slug": "Not A Slug",
        "adminAddress": "0x123",
        "branding": {"primaryColor": "red"},
        "contactEmail": "not-an-email",
    })
    assert fields(errors) == {"name", "slug", "adminAddress", "branding.primaryColor", "contactEmail"}
    messages = {e.field: e.message for e in errors}
    assert messages["adminAddress"] == "Invalid Ethereum address"
    assert messages["branding.primaryColor"] == "Invalid color hex code"


def test_short_hex_color_accepted():
    _, errors = validate_payload(CompanyCreate, {
        "name": "Acme",
        "adminAddress": OWNER_WALLET,
        "branding": {"primaryColor": "#fff", "customCSS": "body {}"},
    })
    assert errors == []


def test_non_object_input_is_reported():
    value, errors = validate_payload(CompanyCreate, ["Acme"])
    assert value is None
    assert errors[0].field == ""


def test_delayed_reveal_requires_reveal_date():
    data = campaign_data()
    data["nftConfig"]["revealType"] = "DELAYED"
    _, errors = validate_payload(CampaignCreate, data)
    assert [(e.field, e.message) for e in errors] == [
        ("nftConfig.revealDate", "Reveal date is required for delayed reveal type"),
    ]


def test_delayed_reveal_with_date_is_valid():
    data = campaign_data()
    data["nftConfig"].update(revealType="DELAYED", revealDate="2025-01-10T00:00:00Z")
    campaign, errors = validate_payload(CampaignCreate, data)
    assert errors == []
    assert campaign.nft_config.reveal_date.tzinfo is None


def test_end_date_must_follow_start_date():
    _, errors = validate_payload(CampaignCreate, campaign_data(endDate="2025-01-01T00:00:00Z"))
    assert [(e.field, e.message) for e in errors] == [("endDate", "End date must be after start date")]


def test_mint_limit_must_be_positive_integer():
    _, errors = validate_payload(CampaignCreate, campaign_data(mintLimit=0))
    assert fields(errors) == {"mintLimit"}
    _, errors = validate_payload(CampaignCreate, campaign_data(mintLimit="10"))
    assert fields(errors) == {"mintLimit"}


def test_empty_media_fields_mean_unset():
    campaign, errors = validate_payload(CampaignCreate, campaign_data(featuredImage="", bannerImage=None))
    assert errors == []
    assert campaign.featured_image is None


def test_invalid_urls_and_enums_rejected():
    _, errors = validate_payload(CampaignCreate, campaign_data(
        featuredImage="not a url",
        galleryImages=["https://cdn.example.com/a.png", "nope"],
        type="PARTY",
    ))
    assert fields(errors) == {"featuredImage", "galleryImages.1", "type"}


def test_allowlist_entries_must_be_addresses():
    _, errors = validate_payload(CampaignCreate, campaign_data(
        accessControl={"accessType": "ALLOWLIST", "allowlist": [OWNER_WALLET, "alice"]},
    ))
    assert fields(errors) == {"accessControl.allowlist.1"}


def test_empty_attribute_value_rejected():
    data = campaign_data()
    data["nftConfig"]["attributes"] = [{"traitType": "Year", "value": ""}]
    _, errors = validate_payload(CampaignCreate, data)
    assert fields(errors) == {"nftConfig.attributes.0.value"}
