import json

import pytest


def test_add_normalizes_phone_number(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    contact = directory.add("John Doe", " +1 234 567\t890 ")

    assert contact.phone_number == "1234567890"
    stored = json.loads((tmp_path / "contacts.json").read_text())
    assert stored == {"John Doe": {"name": "John Doe", "phoneNumber": "1234567890"}}


def test_add_duplicate_name_is_rejected(tmp_path):
    from mudslide.contacts import ContactDirectory
    from shared.errors import DuplicateContact

    directory = ContactDirectory(tmp_path)
    directory.add("Jane", "111")

    with pytest.raises(DuplicateContact) as exc:
        directory.add("Jane", "222")

    assert 'Contact "Jane" already exists.' in str(exc.value)
    assert directory.find("Jane").phone_number == "111"


def test_exact_match_wins_over_earlier_partial_match(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    directory.add("Johnny", "999")
    directory.add("John Doe", "1234567890")
    directory.add("john", "555")

    assert directory.find("JOHN").phone_number == "555"


def test_partial_match_uses_insertion_order(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    directory.add("John Doe", "1234567890")
    directory.add("Johnny", "999")

    assert directory.find("john").name == "John Doe"
    assert directory.find("NNY").name == "Johnny"
    assert directory.find("alice") is None


def test_remove_and_update_report_missing_contacts(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    directory.add("Jane Smith", "0987654321")

    assert directory.update("Nobody", "1") is False
    assert directory.remove("Nobody") is False
    # lookups for mutation are exact
    assert directory.remove("jane smith") is False

    assert directory.update("Jane Smith", "+44 20 7946") is True
    assert directory.find("jane").phone_number == "44207946"
    assert directory.remove("Jane Smith") is True
    assert directory.exists("Jane Smith") is False


def test_missing_file_loads_as_empty(tmp_path):
    from mudslide.contacts import ContactDirectory

    assert ContactDirectory(tmp_path / "not-created").load() == {}


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", '{"x": "not an object"}', '{"x": {"name": "x"}}'])
def test_corrupt_file_loads_as_empty(tmp_path, content):
    from mudslide.contacts import ContactDirectory

    (tmp_path / "contacts.json").write_text(content)

    assert ContactDirectory(tmp_path).load() == {}


def test_save_of_load_is_byte_identical(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    directory.add("Zoë", "31600000000")
    directory.add("Adam", "31611111111")
    before = (tmp_path / "contacts.json").read_bytes()

    directory.save(directory.load())

    assert (tmp_path / "contacts.json").read_bytes() == before
    assert list(directory.all()) == ["Zoë", "Adam"]


def test_find_by_phone_ignores_formatting(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    directory.add("Jane Smith", "0987654321")

    assert directory.find_by_phone("+0987 654 321").name == "Jane Smith"
    assert directory.find_by_phone("123") is None


def test_normalize_phone_number_strips_only_one_plus():
    from mudslide.contacts import normalize_phone_number

    assert normalize_phone_number("+31 6 1234 5678") == "31612345678"
    assert normalize_phone_number("++1") == "+1"
    assert normalize_phone_number("") == ""
