from abc import ABC, abstractmethod
from enum import StrEnum, unique


@unique
class EncryptionAlgorithm(StrEnum):
    AES = "aes"


_ALGORITHM_REGISTRY: dict[EncryptionAlgorithm, type["BaseCryptoUtil"]] = {}


def register_algorithm(algo: EncryptionAlgorithm):
    """
    装饰器：将加密实现类注册到全局注册表中。
    """

    def decorator(cls):
        _ALGORITHM_REGISTRY[algo] = cls
        return cls

    return decorator


class BaseCryptoUtil(ABC):
    """
    对称加解密接口（Secret Codec）。

    token 与 client_secret 入库前加密、出库后解密都经过这里，
    业务层只依赖该接口，不关心具体算法。
    """

    def __init__(self, key: str | bytes):
        if not key:
            raise ValueError("Key cannot be empty")
        self.key = key

    @abstractmethod
    def encrypt(self, plain_text: str) -> str:
        pass

    @abstractmethod
    def decrypt(self, cipher_text: str) -> str:
        pass

    def encrypt_optional(self, plain_text: str | None) -> str | None:
        return self.encrypt(plain_text) if plain_text else None

    def decrypt_optional(self, cipher_text: str | None) -> str | None:
        return self.decrypt(cipher_text) if cipher_text else None


def get_crypto_class(algo: EncryptionAlgorithm) -> type[BaseCryptoUtil]:
    """
    根据算法枚举获取对应的加密器类。
    """
    crypto_class = _ALGORITHM_REGISTRY.get(algo)
    if not crypto_class:
        raise NotImplementedError(f"Algorithm '{algo}' is not registered or implemented.")
    return crypto_class
