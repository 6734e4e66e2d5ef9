import json

import pytest
from trigger_db import TriggerDatabase, build_categories, DEFAULT_BASE_WEIGHT, DEFAULT_SENSITIVITY


def _category(db, name):
    return next(c for c in db.get_categories() if c.name == name)


def test_trigger_db_initialization(trigger_db):
    assert len(trigger_db.categories) == 6
    assert trigger_db.toxic_emojis
    assert trigger_db.toxic_hashtags


def test_default_category_order(trigger_db):
    names = [c.name for c in trigger_db.get_categories()]
    assert names == ["comparison", "anxiety", "depression", "bodyImage", "materialism", "ostentation"]


def test_default_category_weights(trigger_db):
    comparison = _category(trigger_db, "comparison")
    assert comparison.base_weight == 23
    assert comparison.sensitivity == 88
    assert comparison.multiplier == 1.0

    depression = _category(trigger_db, "depression")
    assert depression.base_weight == 28
    assert depression.multiplier == 1.3

    materialism = _category(trigger_db, "materialism")
    assert materialism.multiplier == 0.8


def test_every_category_has_display_name_and_reason(trigger_db):
    for category in trigger_db.get_categories():
        assert category.display_name
        assert category.reason


def test_phrases_belong_to_one_category(trigger_db):
    seen = {}
    for category in trigger_db.get_categories():
        for phrase in category.phrases:
            assert phrase not in seen, f"'{phrase}' in both {seen.get(phrase)} and {category.name}"
            seen[phrase] = category.name


def test_body_phrases_live_in_body_image(trigger_db):
    body = _category(trigger_db, "bodyImage")
    assert "corpo perfeito" in body.phrases
    assert "perfect body" in body.phrases
    assert "corpo perfeito" not in _category(trigger_db, "comparison").phrases


def test_phrases_are_lowercase(trigger_db):
    for category in trigger_db.get_categories():
        for phrase in category.phrases:
            assert phrase == phrase.lower()


def test_hashtags_and_emojis_deduplicated(trigger_db):
    assert len(trigger_db.toxic_hashtags) == len(set(trigger_db.toxic_hashtags))
    assert len(trigger_db.toxic_emojis) == len(set(trigger_db.toxic_emojis))
    assert all(h.startswith("#") for h in trigger_db.toxic_hashtags)


class TestBuildCategories:
    def test_earlier_category_claims_phrase(self):
        categories = build_categories({
            "first": {"phrases": ["shared", "only first"]},
            "second": {"phrases": ["shared", "only second"]},
        })
        assert categories[0].phrases == ("shared", "only first")
        assert categories[1].phrases == ("only second",)

    def test_duplicates_within_category_removed(self):
        categories = build_categories({"a": {"phrases": ["Dup", "dup", "  DUP "]}})
        assert categories[0].phrases == ("dup",)

    def test_blank_phrases_dropped(self):
        categories = build_categories({"a": {"phrases": ["", "   ", "real"]}})
        assert categories[0].phrases == ("real",)

    def test_defaults_for_missing_fields(self):
        category = build_categories({"new_one": {"phrases": ["x y z"]}})[0]
        assert category.base_weight == DEFAULT_BASE_WEIGHT
        assert category.sensitivity == DEFAULT_SENSITIVITY
        assert category.multiplier == 1.0
        assert category.display_name == "New One"
        assert category.reason

    def test_sensitivity_clamped(self):
        categories = build_categories({
            "low": {"phrases": [], "sensitivity": 5},
            "high": {"phrases": [], "sensitivity": 500},
        })
        assert categories[0].sensitivity == 25
        assert categories[1].sensitivity == 100


class TestLoadingFromDisk:
    def test_loads_categories_json(self, tmp_path):
        (tmp_path / "categories.json").write_text(json.dumps({
            "custom": {
                "display_name": "Custom",
                "reason": "Custom reason",
                "base_weight": 20,
                "sensitivity": 80,
                "phrases": ["alpha beta", "gamma"],
            }
        }), encoding="utf-8")
        db = TriggerDatabase(db_path=str(tmp_path))
        assert [c.name for c in db.categories] == ["custom"]
        assert _category(db, "custom").phrases == ("alpha beta", "gamma")

    def test_loads_signals_json(self, tmp_path):
        (tmp_path / "signals.json").write_text(json.dumps({
            "toxic_emojis": ["💎", "💎", "🔥"],
            "toxic_hashtags": ["#Rich", "#rich"],
        }), encoding="utf-8")
        db = TriggerDatabase(db_path=str(tmp_path))
        assert db.toxic_emojis == ("💎", "🔥")
        assert db.toxic_hashtags == ("#rich",)

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        (tmp_path / "categories.json").write_text("{not json", encoding="utf-8")
        db = TriggerDatabase(db_path=str(tmp_path))
        assert len(db.categories) == 6

    def test_missing_directory_uses_defaults(self, tmp_path):
        db = TriggerDatabase(db_path=str(tmp_path / "does-not-exist"))
        assert len(db.categories) == 6

    @pytest.mark.parametrize("content", [
        '["not", "a", "mapping"]',
        '{"custom": ["x"]}',
        '{"custom": {"phrases": "vida perfeita"}}',
        '{"custom": {"phrases": ["x"], "base_weight": "heavy"}}',
        '{"custom": {"phrases": ["x"], "sensitivity": null}}',
    ])
    def test_wrongly_shaped_categories_fall_back_to_defaults(self, tmp_path, content):
        (tmp_path / "categories.json").write_text(content, encoding="utf-8")
        db = TriggerDatabase(db_path=str(tmp_path))
        assert [c.name for c in db.categories][:2] == ["comparison", "anxiety"]
        assert len(db.categories) == 6

    @pytest.mark.parametrize("content", [
        '["x"]',
        '{"toxic_emojis": "💎", "toxic_hashtags": [1, 2]}',
        '{"toxic_hashtags": [null]}',
    ])
    def test_wrongly_shaped_signals_fall_back_to_defaults(self, tmp_path, content):
        (tmp_path / "signals.json").write_text(content, encoding="utf-8")
        db = TriggerDatabase(db_path=str(tmp_path))
        assert "💎" in db.toxic_emojis
        assert "#blessed" in db.toxic_hashtags

    def test_valid_signal_list_kept_beside_invalid_one(self, tmp_path):
        (tmp_path / "signals.json").write_text(
            '{"toxic_emojis": ["🚀"], "toxic_hashtags": {"#rich": 1}}', encoding="utf-8")
        db = TriggerDatabase(db_path=str(tmp_path))
        assert db.toxic_emojis == ("🚀",)
        assert "#blessed" in db.toxic_hashtags

    def test_service_starts_with_wrongly_shaped_files(self, tmp_path):
        from service import ProtectionService
        from settings import Settings

        (tmp_path / "categories.json").write_text('["not", "a", "mapping"]', encoding="utf-8")
        (tmp_path / "signals.json").write_text('["x"]', encoding="utf-8")
        service = ProtectionService(Settings(trigger_db_path=str(tmp_path)))
        assert len(service.config_store.snapshot().categories) == 6
        service.executor.shutdown(wait=False)
