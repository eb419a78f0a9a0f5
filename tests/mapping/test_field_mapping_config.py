from __future__ import annotations

from userupsert.domain.mapping.config import (
    DEFAULT_AUTH_METHOD,
    FieldMappingConfig,
    default_source,
    parse_descriptors,
    parse_mapping_assignments,
)
from userupsert.domain.models import FieldDescriptor, ProfileFieldDefinition

DESCRIPTORS = "\n".join(
    [
        "U | Username",
        "E | Email",
        "F | First name",
        "L | Last name",
        "S | Status",
        "I | ID number",
    ]
)

BASE_MAPPING = {
    "data_map_username": "U",
    "data_map_email": "E",
    "data_map_firstname": "F",
    "data_map_lastname": "L",
    "data_map_status": "S",
}


def test_descriptor_lines_with_bad_shape_are_dropped():
    text = "field1| Description 1\nfield 4 | Description 4\nfield6 |\nfield7 | Description 7 | field8 | Description 8"
    assert parse_descriptors(text) == {"field1": "Description 1"}


def test_descriptor_parsing_normalizes_crlf_and_trims():
    text = "  name1 |  First  \r\nname2|Second\r\n\r\n|Orphan description\r\n"
    assert parse_descriptors(text) == {"name1": "First", "name2": "Second"}


def test_descriptor_repeated_name_last_wins():
    text = "name | First\nname | Second"
    config = FieldMappingConfig.parse(text, {})
    assert config.get_fields() == {"name": "Second"}
    assert config.descriptors() == [FieldDescriptor(name="name", description="Second")]


def test_descriptor_parsing_of_empty_input():
    assert parse_descriptors(None) == {}
    assert parse_descriptors("") == {}


def test_mapping_assignments_keep_only_prefixed_non_empty_values():
    raw = {
        "data_map_username": "U",
        "data_map_email": "",
        "data_map_lastname": "   ",
        "data_map_firstname": None,
        "webservicefields": "U | Username",
        "data_map_data_map_x": "Y",
    }
    assert parse_mapping_assignments(raw) == {"username": "U", "data_map_x": "Y"}


def test_mandatory_fields_default_match_field():
    config = FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING)
    assert config.mandatory_fields() == ["username", "lastname", "firstname", "email", "status"]


def test_mandatory_fields_append_custom_match_field_once():
    config = FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING, raw_match_field="idnumber")
    assert config.mandatory_fields() == ["username", "lastname", "firstname", "email", "status", "idnumber"]


def test_mandatory_fields_have_no_duplicates_when_match_field_is_fixed():
    config = FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING, raw_match_field="email")
    fields = config.mandatory_fields()
    assert fields == ["username", "lastname", "firstname", "email", "status"]
    assert len(fields) == len(set(fields))


def test_ready_with_full_mapping():
    config = FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING)
    assert config.is_ready()
    assert config.readiness_problems() == []


def test_not_ready_without_descriptors():
    config = FieldMappingConfig.parse("", BASE_MAPPING)
    assert not config.is_ready()
    assert "no web service fields configured" in config.readiness_problems()


def test_not_ready_when_match_field_is_not_mapped():
    config = FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING, raw_match_field="idnumber")
    assert not config.is_ready()
    assert "user match field 'idnumber' is not mapped" in config.readiness_problems()

    mapped = FieldMappingConfig.parse(DESCRIPTORS, {**BASE_MAPPING, "data_map_idnumber": "I"}, raw_match_field="idnumber")
    assert mapped.is_ready()


def test_not_ready_when_mapping_points_to_unknown_descriptor():
    config = FieldMappingConfig.parse(DESCRIPTORS, {**BASE_MAPPING, "data_map_idnumber": "Missing"})
    assert not config.is_ready()
    assert any("unknown web service field 'Missing'" in problem for problem in config.readiness_problems())


def test_readiness_is_monotonic_when_mandatory_mapping_is_added():
    partial = dict(BASE_MAPPING)
    del partial["data_map_lastname"]
    before = FieldMappingConfig.parse(DESCRIPTORS, partial)
    after = FieldMappingConfig.parse(DESCRIPTORS, {**partial, "data_map_lastname": "L"})

    assert not before.is_ready()
    assert "mandatory field 'lastname' is not mapped" in before.readiness_problems()
    assert after.is_ready()


def test_default_auth_method():
    assert FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING).default_auth_method() == DEFAULT_AUTH_METHOD
    assert FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING, raw_default_auth=" ldap ").default_auth_method() == "ldap"


def test_supported_match_fields_include_unique_text_profile_fields():
    config = FieldMappingConfig.parse(DESCRIPTORS, BASE_MAPPING)
    profile_fields = [
        ProfileFieldDefinition(shortname="employeeid", name="Employee ID", datatype="text", force_unique=True),
        ProfileFieldDefinition(shortname="nickname", name="Nickname", datatype="text", force_unique=False),
        ProfileFieldDefinition(shortname="office", name="Office", datatype="menu", force_unique=True),
    ]

    fields = config.supported_match_fields(profile_fields)

    assert fields == {
        "username": "Username",
        "idnumber": "ID number",
        "email": "Email address",
        "profile_field_employeeid": "Employee ID",
    }


def test_default_source_is_ready():
    config = FieldMappingConfig.from_source(default_source())
    assert config.is_ready()
    assert set(config.get_fields()) == {"username", "firstname", "lastname", "email", "auth", "password", "status"}
    assert config.mapping()["password"] == "password"
    assert config.user_match_field() == "username"


def test_from_source_reads_match_field_and_default_auth():
    source = {
        "webservicefields": DESCRIPTORS,
        "usermatchfield": "idnumber",
        "defaultauth": "nologin",
        "data_map_idnumber": "I",
        **BASE_MAPPING,
    }
    config = FieldMappingConfig.from_source(source)
    assert config.user_match_field() == "idnumber"
    assert config.default_auth_method() == "nologin"
    assert config.external_name("idnumber") == "I"
    assert config.is_ready()


def test_from_source_never_raises_on_bad_content():
    config = FieldMappingConfig.from_source({"webservicefields": ["not", "text"], "data_map_username": 5})
    assert config.get_fields() == {}
    assert config.mapping() == {"username": "5"}
    assert not config.is_ready()
