"""
Tests for execution/lovrag/config.py

Covers: RagConfig defaults, environment loading and validation.
"""

import pytest


class TestRagConfigDefaults:
    """Tests for RagConfig default values."""

    def test_defaults(self):
        from execution.lovrag.config import RagConfig
        cfg = RagConfig()
        assert cfg.embedding_model == "sentence-transformers/all-MiniLM-L6-v2"
        assert cfg.embedding_dimensions == 384
        assert cfg.top_k == 5
        assert cfg.min_score == 0.0
        assert cfg.excerpt_chars == 500
        assert cfg.snippet_chars == 200
        assert cfg.backend_order == ["deepseek", "rule_based"]
        assert cfg.deepseek_model == "deepseek-reasoner"
        assert cfg.temperature == 0.3
        assert cfg.max_tokens == 1500
        assert cfg.history_messages == 6
        assert cfg.database_url is None

    def test_backend_order_not_shared(self):
        from execution.lovrag.config import RagConfig
        a, b = RagConfig(), RagConfig()
        a.backend_order.append("rule_based")
        assert b.backend_order == ["deepseek", "rule_based"]

    def test_deepseek_configured(self):
        from execution.lovrag.config import RagConfig
        assert RagConfig(deepseek_api_key="sk-test").deepseek_configured is True
        assert RagConfig().deepseek_configured is False
        assert RagConfig(deepseek_api_key="not-configured").deepseek_configured is False


class TestRagConfigFromEnv:
    """Tests for RagConfig.from_env()."""

    def test_reads_environment(self, monkeypatch):
        from execution.lovrag.config import RagConfig
        monkeypatch.setenv("LOVRAG_EMBEDDING_DIMENSIONS", "768")
        monkeypatch.setenv("LOVRAG_MIN_SCORE", "0.3")
        monkeypatch.setenv("LOVRAG_BACKENDS", "rule_based")
        monkeypatch.setenv("LOVRAG_BACKEND_TIMEOUT", "15")
        monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-env")
        monkeypatch.setenv("POSTGRES_URL", "postgresql://db/lovrag")
        cfg = RagConfig.from_env()
        assert cfg.embedding_dimensions == 768
        assert cfg.min_score == 0.3
        assert cfg.backend_order == ["rule_based"]
        assert cfg.backend_timeout_s == 15.0
        assert cfg.deepseek_api_key == "sk-env"
        assert cfg.database_url == "postgresql://db/lovrag"

    def test_unset_environment_uses_defaults(self, monkeypatch):
        from execution.lovrag.config import RagConfig
        for name in (
            "LOVRAG_EMBEDDING_DIMENSIONS", "LOVRAG_MIN_SCORE", "LOVRAG_BACKENDS",
            "DEEPSEEK_API_KEY", "POSTGRES_URL", "DATABASE_URL",
        ):
            monkeypatch.delenv(name, raising=False)
        cfg = RagConfig.from_env()
        assert cfg.embedding_dimensions == 384
        assert cfg.backend_order == ["deepseek", "rule_based"]
        assert cfg.deepseek_api_key is None
        assert cfg.database_url is None

    def test_backend_list_is_trimmed(self, monkeypatch):
        from execution.lovrag.config import RagConfig
        monkeypatch.setenv("LOVRAG_BACKENDS", " deepseek , rule_based ,")
        assert RagConfig.from_env().backend_order == ["deepseek", "rule_based"]

    def test_database_url_fallback(self, monkeypatch):
        from execution.lovrag.config import RagConfig
        monkeypatch.delenv("POSTGRES_URL", raising=False)
        monkeypatch.setenv("DATABASE_URL", "postgresql://fallback/lovrag")
        assert RagConfig.from_env().database_url == "postgresql://fallback/lovrag"


class TestRagConfigValidate:
    """Tests for RagConfig.validate()."""

    def test_valid_config_returns_self(self):
        from execution.lovrag.config import RagConfig
        cfg = RagConfig()
        assert cfg.validate() is cfg

    @pytest.mark.parametrize("overrides", [
        {"embedding_dimensions": 0},
        {"top_k": -1},
        {"min_score": 1.5},
        {"backend_order": ["gpt"]},
        {"backend_timeout_s": 0},
    ])
    def test_invalid_values_raise(self, overrides):
        from execution.lovrag.config import RagConfig
        with pytest.raises(ValueError):
            RagConfig(**overrides).validate()
