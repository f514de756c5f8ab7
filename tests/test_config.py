"""
Test: Configuration object.
"""
from eresources.config import Config


class TestConfig:
    def test_defaults(self):
        cfg = Config()
        assert cfg.grade_min == 1
        assert cfg.grade_max == 10
        assert cfg.session_cookie_name == "session"

    def test_update_known_keys_only(self):
        cfg = Config()
        cfg.update({"list_limit": 25, "not_a_setting": True})
        assert cfg.list_limit == 25
        assert not hasattr(cfg, "not_a_setting")

    def test_to_dict_hides_keys(self):
        data = Config().to_dict()
        assert "submissions_table" in data
        assert "supabase_service_key" not in data
        assert "supabase_jwt_secret" not in data
