from typing import Optional


class StorageProvider:
    name = "base"

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    def get_public_url(self, key: str) -> str:
        raise NotImplementedError

    def read(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError
