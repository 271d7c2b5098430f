from internal.config import settings
from pkg.crypto import BaseCryptoUtil, EncryptionAlgorithm, get_crypto_class
from pkg.toolkit.types import LazyProxy

_secret_codec: BaseCryptoUtil | None = None


def init_secret_codec(secret_key: str | None = None, algo: EncryptionAlgorithm = EncryptionAlgorithm.AES) -> None:
    """初始化第三方密钥 / 令牌的入库加解密器，默认使用 AES_SECRET"""
    global _secret_codec
    key = secret_key or settings.AES_SECRET.get_secret_value()
    _secret_codec = get_crypto_class(algo)(key)


def _get_secret_codec() -> BaseCryptoUtil:
    if _secret_codec is None:
        raise RuntimeError("Secret codec not initialized. Call init_secret_codec() first.")
    return _secret_codec


secret_codec = LazyProxy[BaseCryptoUtil](_get_secret_codec)
