from roots_api import storage


def test_find_many_puts_missing_order_field_last(store):
    store.docs(storage.TASKS).update(
        {
            "old": {"userId": "u", "createdAt": "2026-01-01T00:00:00+00:00"},
            "undated": {"userId": "u"},
            "new": {"userId": "u", "createdAt": "2026-02-01T00:00:00+00:00"},
            "other": {"userId": "v", "createdAt": "2026-03-01T00:00:00+00:00"},
        }
    )
    newest_first = storage.find_many(storage.TASKS, {"userId": "u"}, order_by="createdAt", descending=True)
    assert [doc["id"] for doc in newest_first] == ["new", "old", "undated"]
    oldest_first = storage.find_many(storage.TASKS, {"userId": "u"}, order_by="createdAt")
    assert [doc["id"] for doc in oldest_first] == ["old", "new", "undated"]


def test_find_many_limit_applies_after_ordering(store):
    store.docs(storage.MESSAGES).update({f"m{i}": {"createdAt": f"2026-01-0{i}"} for i in range(1, 5)})
    docs = storage.find_many(storage.MESSAGES, order_by="createdAt", descending=True, limit=2)
    assert [doc["id"] for doc in docs] == ["m4", "m3"]
