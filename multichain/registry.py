from typing import Dict, Iterator, List, Optional

from multichain.exceptions import DuplicateChainError, UnsupportedChainError
from multichain.models import ChainConfig
from multichain.validator import normalize_chain_id


class ChainRegistry:
    """
    Catalog of registered chain configurations keyed by normalized chain id.

    The registry only stores configurations; validation and sanitization
    happen before :meth:`add` is called.
    """

    def __init__(self) -> None:
        self._chains: Dict[str, ChainConfig] = {}

    def __contains__(self, chain_id: object) -> bool:
        return isinstance(chain_id, str) and normalize_chain_id(chain_id) in self._chains

    def __iter__(self) -> Iterator[ChainConfig]:
        return iter(list(self._chains.values()))

    def __len__(self) -> int:
        return len(self._chains)

    def get(self, chain_id: str) -> Optional[ChainConfig]:
        return self._chains.get(normalize_chain_id(chain_id))

    def require(self, chain_id: str) -> ChainConfig:
        config = self.get(chain_id)
        if config is None:
            raise UnsupportedChainError(chain_id)
        return config

    def add(self, config: ChainConfig) -> None:
        key = normalize_chain_id(config.chain_id)
        if key in self._chains:
            raise DuplicateChainError(key)
        self._chains[key] = config

    def remove(self, chain_id: str) -> ChainConfig:
        key = normalize_chain_id(chain_id)
        if key not in self._chains:
            raise UnsupportedChainError(chain_id)
        return self._chains.pop(key)

    def chain_ids(self) -> List[str]:
        return list(self._chains)

    def clear(self) -> None:
        self._chains.clear()
