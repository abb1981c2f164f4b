"""
État de caisse côté serveur.

Le cookie de session (limité à ~4 Ko par les navigateurs) ne porte qu'un identifiant
opaque; le panier et la commande en attente sont stockés dans un hash Redis
(une entrée JSON par clé) avec expiration glissante.
"""
import json
import secrets
from typing import Any, Iterator, MutableMapping

import agrimarket.infra.redis_client as redis_client
from agrimarket.config import CHECKOUT_STATE_TTL_SECONDS

STATE_ID_KEY = "checkout_sid"
KEY_PREFIX = "agrimarket:checkout:"

class CheckoutState(MutableMapping):
    def __init__(self, state_id: str, client=None, ttl: int = CHECKOUT_STATE_TTL_SECONDS):
        self.state_id = state_id
        self.client = client if client is not None else redis_client.get_redis()
        self.ttl = ttl

    @property
    def redis_key(self) -> str:
        return f"{KEY_PREFIX}{self.state_id}"

    def __getitem__(self, name: str) -> Any:
        raw = self.client.hget(self.redis_key, name)
        if raw is None:
            raise KeyError(name)
        return json.loads(raw)

    def __setitem__(self, name: str, value: Any) -> None:
        self.client.hset(self.redis_key, name, json.dumps(value))
        self.client.expire(self.redis_key, self.ttl)

    def __delitem__(self, name: str) -> None:
        if not self.client.hdel(self.redis_key, name):
            raise KeyError(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.client.hkeys(self.redis_key))

    def __len__(self) -> int:
        return self.client.hlen(self.redis_key)

def checkout_state(session: MutableMapping[str, Any]) -> CheckoutState:
    """État de caisse de l'acheteur; crée l'identifiant opaque en session au premier accès."""
    state_id = session.get(STATE_ID_KEY)
    if not state_id:
        state_id = secrets.token_urlsafe(24)
        session[STATE_ID_KEY] = state_id
    return CheckoutState(state_id)
