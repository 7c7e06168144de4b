import pytest

from ispmanager.security import (
    decrypt_secret,
    encrypt_secret,
    generate_temp_password,
    hash_password,
    verify_password,
)


def test_password_hash_verifies_and_rejects():
    hashed = hash_password('supersecret')

    assert hashed != 'supersecret'
    assert verify_password('supersecret', hashed) is True
    assert verify_password('wrong', hashed) is False
    assert verify_password('supersecret', None) is False
    assert verify_password('supersecret', 'not-a-bcrypt-hash') is False


def test_temp_password_is_alphanumeric():
    password = generate_temp_password()

    assert len(password) == 8
    assert password.isalnum()
    assert len(generate_temp_password(16)) == 16


def test_secret_encryption_round_trip_and_key_mismatch(app):
    with app.app_context():
        token = encrypt_secret('router-secret')
        assert token != 'router-secret'
        assert decrypt_secret(token) == 'router-secret'
        assert encrypt_secret(None) is None

        app.config['ENCRYPTION_KEY'] = None
        with pytest.raises(ValueError):
            decrypt_secret(token)


def test_secret_key_fallback_is_stable(app):
    app.config['ENCRYPTION_KEY'] = None
    with app.app_context():
        token = encrypt_secret('pppoe-pass')
        assert decrypt_secret(token) == 'pppoe-pass'
