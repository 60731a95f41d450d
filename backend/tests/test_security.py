"""安全模块单元测试：密码哈希、JWT 生成与解析、Agent 令牌。"""
import hashlib

from app.core.security import (
    AGENT_TOKEN_PREFIX,
    create_access_token,
    decode_token,
    generate_agent_token,
    hash_agent_token,
    hash_password,
    verify_password,
)


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("mypassword")
        assert verify_password("mypassword", hashed)
        assert not verify_password("wrong", hashed)

    def test_empty_hash_never_verifies(self):
        assert verify_password("anything", "") is False


class TestJWT:
    def test_create_and_decode_access_token(self):
        payload = decode_token(create_access_token("admin@local"))
        assert payload is not None
        assert payload["sub"] == "admin@local"
        assert payload["type"] == "access"

    def test_decode_invalid_token(self):
        assert decode_token("invalid.jwt.token") is None

    def test_decode_agent_token(self):
        assert decode_token(generate_agent_token().plaintext) is None


class TestAgentToken:
    def test_format(self):
        info = generate_agent_token()
        assert info.plaintext.startswith(AGENT_TOKEN_PREFIX)
        assert len(info.plaintext) == len(AGENT_TOKEN_PREFIX) + 64
        assert info.prefix == info.plaintext[:8]
        assert info.hash == hashlib.sha256(info.plaintext.encode()).hexdigest()

    def test_unique(self):
        assert generate_agent_token().plaintext != generate_agent_token().plaintext

    def test_hash_is_deterministic(self):
        assert hash_agent_token("lpa_x") == hash_agent_token("lpa_x")
        assert len(hash_agent_token("lpa_x")) == 64
