"""
NEUROGUARD - Supabase Credential Verifier

Client du service d'identité Supabase (API REST GoTrue) via httpx.

Classement des réponses:
    400/401/422 sur /token  → refus définitif (InvalidCredentialsError)
    429 sur /token          → refus définitif, jamais rejoué sur le repli
    réseau, timeout, 5xx, corps illisible → VerifierUnavailableError
"""

from typing import Any, Dict, List, Optional

import httpx
import jwt

from .errors import InvalidCredentialsError, VerifierUnavailableError
from .interfaces import (
    IAccountProvisioner,
    ICredentialVerifier,
    IPasswordResetter,
    IRemoteSignOut,
    Principal,
    Role,
    normalize_key,
)
from ..core.interfaces import SupabaseSettings
from ..logging.interfaces import IStructuredLogger


class SupabaseCredentialVerifier(ICredentialVerifier, IRemoteSignOut, IPasswordResetter, IAccountProvisioner):
    """
    Vérificateur distant Supabase.

    Les comptes sans rôle (ou avec un rôle inconnu) dans user_metadata
    reçoivent le rôle stagiaire et la seule permission "schedule".

    Example:
        verifier = SupabaseCredentialVerifier(config.identity.supabase)
        principal = await verifier.verify("coord@clinica.com", "coord123")
    """

    provider_name = "supabase"

    REJECTION_STATUSES = frozenset({400, 401, 422})
    RATE_LIMITED_STATUS: int = 429
    DEFAULT_ROLE: Role = Role.INTERN
    DEFAULT_PERMISSIONS: tuple = ("schedule",)
    TOKEN_AUDIENCE: str = "authenticated"

    def __init__(
        self,
        settings: SupabaseSettings,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[IStructuredLogger] = None,
    ):
        """
        Args:
            settings: URL, clé anonyme, secret JWT optionnel, timeout
            client: Client httpx partagé (sinon un client par appel)
            logger: Logger structuré
        """
        if not settings.url or not settings.anon_key:
            raise ValueError("Supabase: url et anon_key obligatoires")

        self.base_url = settings.url.rstrip("/")
        self._anon_key = settings.anon_key
        self._jwt_secret = settings.jwt_secret
        self._timeout = settings.timeout_seconds
        self._client = client
        self._logger = logger

    async def verify(self, key: str, secret: str) -> Principal:
        """
        Connexion email / mot de passe.

        Un identifiant qui n'est pas un email ne peut pas être jugé par le
        service distant: VerifierUnavailableError, la table locale peut
        alors statuer selon la politique de repli.

        Raises:
            InvalidCredentialsError: Identifiants refusés par le service
            VerifierUnavailableError: Service injoignable ou réponse inexploitable
        """
        email = normalize_key(key)
        if "@" not in email:
            raise VerifierUnavailableError("Identifiant non email, non pris en charge", provider=self.provider_name)

        response = await self._post(
            "/auth/v1/token?grant_type=password",
            {"email": email, "password": secret},
        )

        if response.status_code in self.REJECTION_STATUSES:
            raise InvalidCredentialsError(reason="rejected_by_identity_service")
        if response.status_code == self.RATE_LIMITED_STATUS:
            if self._logger:
                self._logger.warn("Service d'identité: tentatives limitées", account=email)
            raise InvalidCredentialsError(reason="rate_limited_by_identity_service")
        self._raise_for_unavailable(response, "token")

        body = self._json_body(response)
        access_token = body.get("access_token")
        user = body.get("user")
        if not isinstance(access_token, str) or not isinstance(user, dict) or not user.get("id"):
            raise VerifierUnavailableError("Réponse /token incomplète", provider=self.provider_name)

        if self._jwt_secret:
            self._validate_access_token(access_token, str(user["id"]))

        return self._principal_from_user(user, access_token=access_token)

    async def sign_out(self, access_token: Optional[str]) -> None:
        """
        Révoque le jeton côté service. Un jeton déjà invalide (401) est ignoré.

        Raises:
            VerifierUnavailableError: Appel en échec
        """
        if not access_token:
            return

        response = await self._post("/auth/v1/logout", None, bearer=access_token)
        if response.status_code == 401:
            return
        self._raise_for_unavailable(response, "logout")

    async def request_password_reset(self, email: str) -> None:
        """
        Envoie l'email de réinitialisation.

        Raises:
            VerifierUnavailableError: Appel en échec
        """
        response = await self._post("/auth/v1/recover", {"email": normalize_key(email)})
        self._raise_for_unavailable(response, "recover")

    async def create_user(
        self,
        email: str,
        secret: str,
        display_name: str,
        role: Role,
        permissions: List[str],
    ) -> Principal:
        """
        Crée un compte avec ses métadonnées (nom, rôle, permissions).

        Raises:
            InvalidCredentialsError: Compte refusé (email déjà utilisé, secret faible)
            VerifierUnavailableError: Appel en échec
        """
        response = await self._post(
            "/auth/v1/signup",
            {
                "email": normalize_key(email),
                "password": secret,
                "data": {"name": display_name, "role": role.value, "permissions": list(permissions)},
            },
        )

        if response.status_code in self.REJECTION_STATUSES:
            raise InvalidCredentialsError(reason=self._error_message(response))
        self._raise_for_unavailable(response, "signup")

        body = self._json_body(response)
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        if not user.get("id"):
            raise VerifierUnavailableError("Réponse /signup incomplète", provider=self.provider_name)

        return self._principal_from_user(user)

    # ──────────────────────────────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────────────────────────────

    async def _post(
        self, path: str, payload: Optional[Dict[str, Any]], bearer: Optional[str] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {bearer or self._anon_key}",
            "Accept": "application/json",
        }

        try:
            if self._client is not None:
                return await self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=False) as client:
                return await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            if self._logger:
                self._logger.warn("Service d'identité injoignable", path=path.split("?")[0], error=type(e).__name__)
            raise VerifierUnavailableError(f"Service d'identité injoignable: {type(e).__name__}", provider=self.provider_name)

    def _raise_for_unavailable(self, response: httpx.Response, operation: str) -> None:
        if 200 <= response.status_code < 300:
            return
        if self._logger:
            self._logger.warn("Réponse inattendue du service d'identité", operation=operation, status=response.status_code)
        raise VerifierUnavailableError(f"{operation}: HTTP {response.status_code}", provider=self.provider_name)

    def _json_body(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            raise VerifierUnavailableError("Réponse non JSON", provider=self.provider_name)
        if not isinstance(body, dict):
            raise VerifierUnavailableError("Réponse JSON non objet", provider=self.provider_name)
        return body

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return "rejected_by_identity_service"
        if isinstance(body, dict):
            return str(body.get("msg") or body.get("error_description") or body.get("error") or "rejected_by_identity_service")
        return "rejected_by_identity_service"

    def _validate_access_token(self, access_token: str, user_id: str) -> None:
        """
        Vérifie signature, expiration et audience du jeton émis.

        Raises:
            VerifierUnavailableError: Jeton non vérifiable ou incohérent
        """
        try:
            payload = jwt.decode(
                access_token,
                self._jwt_secret,
                algorithms=["HS256"],
                audience=self.TOKEN_AUDIENCE,
                options={"require": ["exp", "sub"]},
            )
        except jwt.InvalidTokenError as e:
            raise VerifierUnavailableError(f"Jeton distant invalide: {type(e).__name__}", provider=self.provider_name)

        if payload.get("sub") != user_id:
            raise VerifierUnavailableError("Jeton distant: sub incohérent", provider=self.provider_name)

    def _principal_from_user(self, user: Dict[str, Any], access_token: Optional[str] = None) -> Principal:
        metadata = user.get("user_metadata") or {}
        email = normalize_key(user.get("email") or "")

        try:
            role = Role.parse(metadata.get("role", self.DEFAULT_ROLE.value))
        except ValueError:
            if self._logger:
                self._logger.warn("Rôle distant inconnu, rôle stagiaire appliqué", account=email)
            role = self.DEFAULT_ROLE

        permissions = metadata.get("permissions")
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            permissions = list(self.DEFAULT_PERMISSIONS)

        return Principal(
            principal_id=str(user["id"]),
            key=email,
            display_name=str(metadata.get("name") or email),
            role=role,
            permissions=tuple(permissions),
            provider=self.provider_name,
            access_token=access_token,
        )
