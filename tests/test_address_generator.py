from __future__ import annotations

import logging
import re

import pytest

import tempmail as app
from tests.helpers import make_store


def test_random_address_shape(tmp_path) -> None:
    store = make_store(tmp_path)

    address = app.generate_address(store)

    assert re.fullmatch(r"[a-z0-9]{11}", address.username)
    assert address.domain == "1secmail.com"
    assert store.load() == address


def test_random_domain_comes_from_allow_list(tmp_path) -> None:
    store = make_store(tmp_path)
    domains = ("1secmail.com", "1secmail.net", "1secmail.org")

    for _ in range(20):
        assert app.generate_address(store, domains=domains).domain in domains


def test_random_address_is_not_printed_unless_announced(tmp_path, capsys) -> None:
    store = make_store(tmp_path)

    app.generate_address(store)
    assert capsys.readouterr().out == ""

    address = app.generate_address(store, announce=True)
    assert capsys.readouterr().out.strip() == str(address)


def test_custom_address_with_allowed_domain_is_kept(tmp_path) -> None:
    store = make_store(tmp_path)

    address = app.generate_address(store, "bob42@1secmail.com")

    assert address == app.Address("bob42", "1secmail.com")
    assert store.address_file.read_text() == "bob42@1secmail.com\n"


def test_custom_address_is_lowercased(tmp_path) -> None:
    store = make_store(tmp_path)

    address = app.generate_address(store, "  Bob@1SecMail.com ")

    assert str(address) == "bob@1secmail.com"


@pytest.mark.parametrize("custom", ["bob@example.com", "bob", "bob@"])
def test_unknown_domain_is_substituted(tmp_path, caplog, custom) -> None:
    store = make_store(tmp_path)

    with caplog.at_level(logging.WARNING, logger="tempmail"):
        address = app.generate_address(store, custom, announce=True)

    assert address == app.Address("bob", "1secmail.com")
    assert "No valid domain added" in caplog.text
    assert store.load() == address


def test_unknown_domain_picks_from_every_allowed_domain(tmp_path) -> None:
    store = make_store(tmp_path)
    domains = ("1secmail.com", "1secmail.net")

    address = app.generate_address(store, "bob@example.com", domains=domains)

    assert address.username == "bob"
    assert address.domain in domains


@pytest.mark.parametrize(
    "username",
    ["admin", "admin2", "notadmin", "ADMIN", "PostMaster1", "xabusex", "webmaster", "contact", "hostmaster"],
)
def test_blacklisted_usernames_are_rejected(tmp_path, username) -> None:
    store = make_store(tmp_path)

    with pytest.raises(app.InvalidAddressError) as excinfo:
        app.generate_address(store, f"{username}@1secmail.com")

    assert "blacklisted" in str(excinfo.value)
    assert store.load() is None


def test_blacklist_applies_after_domain_substitution(tmp_path) -> None:
    store = make_store(tmp_path)

    with pytest.raises(app.InvalidAddressError):
        app.generate_address(store, "admin@example.com")


@pytest.mark.parametrize("custom", ["bob.smith@1secmail.com", "@1secmail.com", "bob_1@1secmail.com"])
def test_malformed_addresses_are_rejected(tmp_path, custom) -> None:
    store = make_store(tmp_path)

    with pytest.raises(app.InvalidAddressError) as excinfo:
        app.generate_address(store, custom)

    assert "Provided email is invalid" in str(excinfo.value)
    assert store.load() is None


def test_resolve_identity_is_stable(tmp_path) -> None:
    store = make_store(tmp_path)

    first = app.resolve_identity(store)
    second = app.resolve_identity(make_store(tmp_path))

    assert first == second


def test_resolve_identity_generates_silently(tmp_path, capsys) -> None:
    store = make_store(tmp_path)

    address = app.resolve_identity(store)

    assert capsys.readouterr().out == ""
    assert store.load() == address


def test_resolve_identity_uses_saved_address(tmp_path) -> None:
    store = make_store(tmp_path)
    store.save(app.Address("kept", "1secmail.com"))

    assert app.resolve_identity(store) == app.Address("kept", "1secmail.com")
