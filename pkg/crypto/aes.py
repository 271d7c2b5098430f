from cryptography.fernet import Fernet, InvalidToken

from pkg.crypto.base import BaseCryptoUtil, EncryptionAlgorithm, register_algorithm


@register_algorithm(EncryptionAlgorithm.AES)
class AESCipher(BaseCryptoUtil):
    """
    基于 Fernet 的 AES 加密实现（AES-128-CBC + HMAC-SHA256）。
    """

    def __init__(self, key: str | bytes):
        super().__init__(key)
        try:
            ensure_bytes_key = key if isinstance(key, bytes) else key.encode("utf-8")
            self._fernet = Fernet(ensure_bytes_key)
        except (ValueError, TypeError) as e:
            raise ValueError(
                "Invalid AES key. Key must be 32 url-safe base64-encoded bytes. "
                "Tip: You can use AESCipher.generate_key() to get a valid key."
            ) from e

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")

    def encrypt(self, plain_text: str) -> str:
        if not plain_text:
            return ""
        return self._fernet.encrypt(plain_text.encode("utf-8")).decode("utf-8")

    def decrypt(self, cipher_text: str) -> str:
        if not cipher_text:
            return ""
        try:
            return self._fernet.decrypt(cipher_text.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise ValueError("Decryption failed: Invalid token or wrong key") from e


def aes_encrypt(plaintext: str, secret_key: str | bytes) -> str:
    """Convenience function: AES encrypt."""
    return AESCipher(secret_key).encrypt(plaintext)


def aes_decrypt(ciphertext: str, secret_key: str | bytes) -> str:
    """Convenience function: AES decrypt."""
    return AESCipher(secret_key).decrypt(ciphertext)
