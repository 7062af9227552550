from __future__ import annotations

from datetime import datetime, timezone

import pytest

from agencydesk.import_service import (
    ClientCandidate,
    CsvParseError,
    ExistingKeys,
    compute_avatar,
    detect_delimiter,
    extract_candidates,
    map_columns,
    parse_csv,
    validate_and_partition,
)

OWNER = "owner-1"
NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def partition_csv(content, existing=None):
    df = parse_csv(content)
    candidates = extract_candidates(df, map_columns(df.columns))
    return validate_and_partition(candidates, existing or ExistingKeys(), OWNER, now=NOW)


def test_map_columns_resolves_synonyms_case_and_space_insensitive():
    mapping = map_columns([" Societe ", "MAIL", "Nom", "Tel", "Commentaire"])

    assert mapping == {
        "company_name": " Societe ",
        "email": "MAIL",
        "contact_name": "Nom",
        "phone": "Tel",
        "notes": "Commentaire",
    }


def test_map_columns_missing_fields_resolve_to_none():
    mapping = map_columns(["company", "city"])

    assert mapping["company_name"] == "company"
    assert mapping["email"] is None
    assert mapping["contact_name"] is None
    assert mapping["phone"] is None
    assert mapping["notes"] is None


def test_map_columns_first_matching_column_wins():
    mapping = map_columns(["contact", "fullname", "company"])

    assert mapping["contact_name"] == "contact"


def test_detect_delimiter_prefers_semicolon_when_header_uses_it():
    assert detect_delimiter("company;email;notes\nAcme;a@acme.com;x,y\n") == ";"
    assert detect_delimiter("\n\ncompany,email\n") == ","


def test_parse_csv_skips_blank_lines_and_trims_values():
    df = parse_csv("company , email\n\n  Acme ,  a@acme.com \n\nGlobex,\n")

    assert list(df.columns) == ["company", "email"]
    assert df.to_dict(orient="records") == [
        {"company": "Acme", "email": "a@acme.com"},
        {"company": "Globex", "email": ""},
    ]


def test_parse_csv_accepts_bytes_with_bom():
    df = parse_csv("\ufeffcompany;email\nSociété Générale;contact@sg.fr\n".encode("utf-8"))

    assert list(df.columns) == ["company", "email"]
    assert df.iloc[0]["company"] == "Société Générale"


def test_parse_csv_keeps_na_like_text():
    df = parse_csv("company,notes\nNA,N/A\n")

    assert df.iloc[0]["company"] == "NA"
    assert df.iloc[0]["notes"] == "N/A"


def test_parse_csv_short_rows_get_empty_values():
    df = parse_csv("company,email,phone\nAcme\n")

    assert df.to_dict(orient="records") == [{"company": "Acme", "email": "", "phone": ""}]


@pytest.mark.parametrize("content", ["", "   \n\n", b""])
def test_parse_csv_rejects_empty_content(content):
    with pytest.raises(CsvParseError):
        parse_csv(content)


def test_parse_csv_rejects_unterminated_quote():
    with pytest.raises(CsvParseError) as excinfo:
        parse_csv('company,email\n"Acme,a@acme.com\n')

    assert excinfo.value.status_code == 400


def test_parse_csv_rejects_rows_longer_than_the_header():
    # Unquoted comma in the company name would shift the email out of its column
    with pytest.raises(CsvParseError) as excinfo:
        parse_csv("company,email\nAcme, Inc,contact@acme.com\n")

    assert excinfo.value.message == "Fichier CSV invalide"


def test_parse_csv_keeps_quoted_delimiters_inside_values():
    df = parse_csv('company,email\n"Acme, Inc",contact@acme.com\n')

    assert df.to_dict(orient="records") == [{"company": "Acme, Inc", "email": "contact@acme.com"}]


def test_detect_delimiter_ignores_quoted_header_names():
    assert detect_delimiter('entreprise;"nom, prenom"\nAcme;Jean\n') == ";"
    assert detect_delimiter('"societe; groupe",email\n') == ","


def test_parse_csv_semicolon_header_with_quoted_comma():
    df = parse_csv('entreprise;"nom, prenom"\nAcme;Jean Dupont\n')

    assert list(df.columns) == ["entreprise", "nom, prenom"]
    assert df.iloc[0]["nom, prenom"] == "Jean Dupont"


def test_parse_csv_rejects_non_utf8_bytes():
    with pytest.raises(CsvParseError):
        parse_csv("company\nSociété\n".encode("latin-1"))


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Jean Dupont", "JD"),
        ("jean  marie   dupont", "JM"),
        ("acme", "A"),
        ("", "C"),
        ("   ", "C"),
        (None, "C"),
    ],
)
def test_compute_avatar(name, expected):
    assert compute_avatar(name) == expected


def test_reference_scenario_counts():
    partition = partition_csv(
        "company,email\n"
        "Acme,a@acme.com\n"
        "Acme,a@acme.com\n"
        ",bad@x.com\n"
        "Globex,not-an-email\n"
    )

    assert partition.total_count == 4
    assert len(partition.to_insert) == 1
    assert partition.to_insert[0]["company_name"] == "Acme"
    assert partition.duplicate_rows == [3]
    assert partition.invalid_rows == [4, 5]


def test_row_numbers_count_data_rows_not_blank_lines():
    partition = partition_csv("company,email\n\nAcme,a@acme.com\n\n\n,orphan@x.com\n")

    # Header is row 1; blank lines do not take a number
    assert partition.invalid_rows == [3]


def test_batch_email_duplicate_ignores_case_and_whitespace():
    partition = partition_csv("company,email\nFirst,A@B.com\nSecond, a@b.com \n")

    assert [r["company_name"] for r in partition.to_insert] == ["First"]
    assert partition.to_insert[0]["email"] == "A@B.com"
    assert partition.duplicate_count == 1


def test_invalid_email_row_does_not_claim_its_company_name():
    partition = partition_csv("company,email\nGlobex,not-an-email\nGlobex,\n")

    assert partition.invalid_count == 1
    assert partition.duplicate_count == 0
    assert [r["company_name"] for r in partition.to_insert] == ["Globex"]


def test_row_without_company_is_invalid_whatever_else_it_has():
    partition = partition_csv(
        "company,email,contact_name,phone\n"
        "   ,ok@example.com,Jean Dupont,0102030405\n"
    )

    assert partition.invalid_count == 1
    assert partition.to_insert == []


def test_company_name_is_the_key_only_when_email_is_absent():
    partition = partition_csv(
        "company,email\n"
        "Acme,one@acme.com\n"
        "ACME ,two@acme.com\n"
        " acme,\n"
    )

    # Second row has its own email; third has none and matches the company of row one
    assert [r["email"] for r in partition.to_insert] == ["one@acme.com", "two@acme.com"]
    assert partition.duplicate_rows == [4]


def test_existing_keys_mark_rows_as_duplicates():
    existing = ExistingKeys.from_records([
        {"email": " Known@Acme.com", "company_name": "Acme"},
        {"email": None, "company_name": "  Initech "},
    ])

    partition = partition_csv(
        "company,email\n"
        "Other,known@acme.com\n"
        "initech,\n"
        "Acme,new@acme.com\n",
        existing,
    )

    assert partition.duplicate_rows == [2, 3]
    assert [r["email"] for r in partition.to_insert] == ["new@acme.com"]


def test_records_carry_derived_fields():
    partition = partition_csv(
        "entreprise;mail;nom;mobile;description\n"
        "Tech Corp;jean@tech.com;jean dupont;+33600000000;Salon 2026\n"
        "Solo SARL;;;;\n"
    )

    first, second = partition.to_insert
    assert first == {
        "company_name": "Tech Corp",
        "contact_name": "jean dupont",
        "email": "jean@tech.com",
        "phone": "+33600000000",
        "notes": "Salon 2026",
        "status": "prospect",
        "user_id": OWNER,
        "avatar": "JD",
        "created_at": NOW.isoformat(),
        "updated_at": NOW.isoformat(),
    }
    assert second["contact_name"] == "Solo SARL"
    assert second["avatar"] == "SS"
    assert second["email"] is None
    assert second["phone"] is None
    assert second["notes"] is None


def test_counts_always_add_up():
    partition = partition_csv(
        "company,email\n"
        "A,a@x.io\n"
        "B,a@x.io\n"
        ",\n"
        "C,c@x\n"
        "D,\n"
        "d,\n"
    )

    assert len(partition.to_insert) + partition.duplicate_count + partition.invalid_count == partition.total_count
    assert partition.total_count == 6


def test_validate_and_partition_works_on_plain_candidates():
    candidates = [
        ClientCandidate(row_number=2, company_name="Acme", email="a@acme.com"),
        ClientCandidate(row_number=3, company_name="Acme"),
    ]

    partition = validate_and_partition(candidates, ExistingKeys(), OWNER, now=NOW)

    assert len(partition.to_insert) == 1
    assert partition.duplicate_rows == [3]
