import json

import pytest

from harrowbench.payloads import json_10kb, json_1kb, user_payload


def _size(payload):
    return len(json.dumps(payload, separators=(",", ":")))


def test_json_1kb_has_ten_users_of_about_a_kilobyte():
    payload = json_1kb()
    assert len(payload["users"]) == 10
    assert 700 < _size(payload) < 1400


def test_json_10kb_has_hundred_users_of_about_ten_kilobytes():
    payload = json_10kb()
    assert len(payload["users"]) == 100
    assert 8000 < _size(payload) < 12000


def test_first_user_record():
    first = json_1kb()["users"][0]
    assert first["email"] == "user0@example.com"
    assert first["id"] == 0
    assert first["active"] is True
    assert first["tags"] == ["bench", "test", "user"]


def test_records_are_consistent():
    users = json_10kb()["users"]
    assert [u["id"] for u in users] == list(range(100))
    assert all(u["name"] == f"User {u['id']}" for u in users)
    assert all(u["active"] == (u["id"] % 2 == 0) for u in users)


def test_prefix_property():
    assert json_10kb()["users"][:10] == json_1kb()["users"]


def test_fresh_copy_each_call():
    first = json_1kb()
    first["users"].clear()
    assert len(json_1kb()["users"]) == 10


def test_empty_payload():
    assert user_payload(0) == {"users": []}


def test_negative_count_rejected():
    with pytest.raises(ValueError):
        user_payload(-1)