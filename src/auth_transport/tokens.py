from __future__ import annotations


class TokenStore:
    """
    Holds the current access token in process memory only.

    Never written to disk, env, or any other storage. A session owns exactly
    one store; the refresh coordinator and login/logout are its only writers.
    """

    __slots__ = ("_token",)

    def __init__(self, token: str | None = None) -> None:
        self._token: str | None = None
        if token is not None:
            self.set(token)

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        tok = str(token or "").strip()
        if not tok:
            raise ValueError("access token must be a non-empty string")
        self._token = tok

    def clear(self) -> None:
        self._token = None

    def __bool__(self) -> bool:
        return self._token is not None

    def __repr__(self) -> str:
        # never print the token itself
        return f"TokenStore(set={self._token is not None})"
