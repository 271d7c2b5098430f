from pkg.crypto.aes import AESCipher, aes_decrypt, aes_encrypt
from pkg.crypto.base import BaseCryptoUtil, EncryptionAlgorithm, get_crypto_class, register_algorithm

__all__ = [
    "AESCipher",
    "BaseCryptoUtil",
    "EncryptionAlgorithm",
    "aes_decrypt",
    "aes_encrypt",
    "get_crypto_class",
    "register_algorithm",
]
