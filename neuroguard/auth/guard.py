"""
NEUROGUARD - Auth Guard

Garde d'authentification: comptage des échecs, verrouillage temporaire,
émission et expiration des sessions, oracle d'autorisation.

Cycle de vie d'une session:
    ANONYMOUS --attempt_login(succès)--> AUTHENTICATED
    ANONYMOUS --attempt_login(échec)--> ANONYMOUS (compteur +1)
    AUTHENTICATED --inactivité > timeout--> ANONYMOUS (expirée)
    AUTHENTICATED --logout()--> ANONYMOUS
"""

import asyncio
import json
import math
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import (
    AccessDeniedError,
    AccountLockedError,
    InvalidCredentialsError,
    MalformedSessionError,
    PermissionDeniedError,
    UnsupportedOperationError,
    VerifierUnavailableError,
)
from .interfaces import (
    IAccountProvisioner,
    ICredentialVerifier,
    IPasswordResetter,
    IRemoteSignOut,
    LoginAttempt,
    LoginResult,
    Principal,
    Role,
    Session,
    normalize_key,
)
from .permission_checker import PermissionChecker
from ..audit.interfaces import IAuditSink, SecurityEventType
from ..core.clock import SystemClock
from ..core.interfaces import FallbackPolicy, IClock
from ..logging.interfaces import IStructuredLogger
from ..logging.structured_logger import StructuredLogger
from ..storage.interfaces import ISessionStore


class SessionState(Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class AuthGuard:
    """
    Garde d'authentification pour un contexte de navigation.

    Une seule connexion/déconnexion est traitée à la fois. Les écritures
    du compteur et de la session interviennent après le dernier point de
    suspension d'une tentative: check_session() ne voit jamais d'état
    partiel. Une tentative dont l'appelant est annulé va tout de même
    jusqu'au bout de ses écritures.

    Example:
        guard = AuthGuard(verifier, MemorySessionStore())
        result = await guard.attempt_login("coord@clinica.com", "coord123")
        if result.ok:
            guard.has_permission("reports")
    """

    SESSION_KEY: str = "neuroguard.session"
    ATTEMPTS_KEY: str = "neuroguard.login_attempts"

    MAX_FAILED_ATTEMPTS: int = 5
    LOCKOUT_WINDOW: timedelta = timedelta(minutes=15)
    SESSION_TIMEOUT: timedelta = timedelta(hours=24)

    def __init__(
        self,
        primary: ICredentialVerifier,
        store: ISessionStore,
        clock: Optional[IClock] = None,
        audit: Optional[IAuditSink] = None,
        logger: Optional[StructuredLogger] = None,
        fallback: Optional[ICredentialVerifier] = None,
        fallback_policy: FallbackPolicy = FallbackPolicy.ON_UNAVAILABLE,
        max_failed_attempts: Optional[int] = None,
        lockout_window: Optional[timedelta] = None,
        session_timeout: Optional[timedelta] = None,
        permission_checker: Optional[PermissionChecker] = None,
    ):
        """
        Args:
            primary: Vérificateur principal
            store: Stockage de session et des compteurs
            clock: Source de temps (défaut: horloge système)
            audit: Journal de sécurité (optionnel)
            logger: Logger structuré
            fallback: Vérificateur de repli (table locale)
            fallback_policy: Quand consulter le repli
            max_failed_attempts: Échecs avant verrouillage (défaut: 5)
            lockout_window: Durée du verrouillage (défaut: 15 min)
            session_timeout: Inactivité maximale (défaut: 24h)
            permission_checker: Table d'autorisation
        """
        self._primary = primary
        self._fallback = fallback
        self._fallback_policy = fallback_policy
        self._store = store
        self._clock = clock or SystemClock()
        self._audit = audit
        self._logger = logger or StructuredLogger("neuroguard.auth", clock=self._clock)
        self._checker = permission_checker or PermissionChecker()

        self.max_failed_attempts = max_failed_attempts or self.MAX_FAILED_ATTEMPTS
        self.lockout_window = lockout_window or self.LOCKOUT_WINDOW
        self.session_timeout = session_timeout or self.SESSION_TIMEOUT

        self._lock = asyncio.Lock()
        self._authenticating = False
        self._current: Optional[Session] = None

    # ──────────────────────────────────────────────────────────────────────
    # Connexion
    # ──────────────────────────────────────────────────────────────────────

    async def attempt_login(self, key: str, secret: str) -> LoginResult:
        """
        Tente une connexion.

        Déroulé:
            1. Compteur >= max et fenêtre non écoulée → AccountLockedError,
               sans consulter aucun vérificateur
            2. Fenêtre écoulée → compteur supprimé
            3. Vérificateur principal, puis repli selon la politique
            4. Succès → compteur supprimé, session créée et persistée
            5. Échec → compteur +1, InvalidCredentialsError(remaining_attempts)

        Args:
            key: Email ou nom d'utilisateur (normalisé trim + minuscules)
            secret: Mot de passe

        Returns:
            LoginResult portant la session ou l'erreur
        """
        return await asyncio.shield(self._attempt_login_locked(key, secret))

    async def _attempt_login_locked(self, key: str, secret: str) -> LoginResult:
        async with self._lock:
            self._authenticating = True
            try:
                return await self._attempt_login(key, secret)
            finally:
                self._authenticating = False

    async def _attempt_login(self, key: str, secret: str) -> LoginResult:
        account = normalize_key(key)
        log = self._logger.with_context()

        if not account:
            return LoginResult(error=InvalidCredentialsError(reason="empty_identifier"))

        now = self._clock.now()
        attempts = self._load_attempts()
        attempt = attempts.get(account)

        if attempt is not None:
            elapsed = now - attempt.last_attempt_at
            if elapsed >= self.lockout_window:
                del attempts[account]
                self._save_attempts(attempts)
            elif attempt.count >= self.max_failed_attempts:
                remaining_seconds = math.ceil((self.lockout_window - elapsed).total_seconds())
                log.warn("Connexion refusée, compte verrouillé", account=account, remaining_seconds=remaining_seconds)
                await self._record(
                    SecurityEventType.LOGIN_LOCKED,
                    {"attempts": attempt.count, "remaining_seconds": remaining_seconds},
                    principal=account,
                )
                return LoginResult(error=AccountLockedError(remaining_seconds))

        principal, reason = await self._verify(account, secret, log)

        # Plus aucun point de suspension avant les écritures
        now = self._clock.now()
        attempts = self._load_attempts()

        if principal is not None:
            if attempts.pop(account, None) is not None:
                self._save_attempts(attempts)
            session = Session.from_principal(principal, now)
            self._save_session(session)
            self._current = session

            log.info("Connexion réussie", account=account, provider=principal.provider, role=principal.role.value)
            await self._record(
                SecurityEventType.LOGIN_SUCCESS,
                {"provider": principal.provider, "role": principal.role.value},
                principal=account,
            )
            return LoginResult(session=session)

        attempt = attempts.get(account) or LoginAttempt(count=0, last_attempt_at=now)
        attempt.count += 1
        attempt.last_attempt_at = now
        attempts[account] = attempt
        self._save_attempts(attempts)

        remaining = max(0, self.max_failed_attempts - attempt.count)
        log.warn("Connexion refusée", account=account, attempts=attempt.count, reason=reason)
        await self._record(
            SecurityEventType.LOGIN_FAILED,
            {"attempts": attempt.count, "remaining_attempts": remaining, "reason": reason},
            principal=account,
        )
        return LoginResult(error=InvalidCredentialsError(remaining_attempts=remaining, reason=reason))

    async def _verify(self, account: str, secret: str, log: IStructuredLogger) -> Tuple[Optional[Principal], str]:
        """
        Vérifie via le principal puis, s'il est indisponible, via le repli.

        Un refus définitif du principal n'est jamais rejoué sur le repli.

        Returns:
            (principal, "") si succès, (None, motif) sinon
        """
        try:
            return await self._primary.verify(account, secret), ""
        except InvalidCredentialsError as e:
            return None, e.reason
        except VerifierUnavailableError as e:
            log.warn("Vérificateur principal indisponible", provider=self._primary.provider_name, error=str(e))
            if self._fallback is None or self._fallback_policy == FallbackPolicy.NEVER:
                return None, "verifier_unavailable"

        await self._record(
            SecurityEventType.VERIFIER_FALLBACK,
            {"from": self._primary.provider_name, "to": self._fallback.provider_name},
            principal=account,
        )
        try:
            return await self._fallback.verify(account, secret), ""
        except InvalidCredentialsError as e:
            return None, e.reason
        except VerifierUnavailableError as e:
            log.error("Vérificateur de repli indisponible", provider=self._fallback.provider_name, error=str(e))
            return None, "verifier_unavailable"

    # ──────────────────────────────────────────────────────────────────────
    # Session
    # ──────────────────────────────────────────────────────────────────────

    async def check_session(self) -> bool:
        """
        Vérifie la session persistée et rafraîchit sa dernière activité.

        Une session inactive depuis plus de session_timeout est détruite.
        Une session illisible est traitée comme absente.

        Returns:
            True si une session valide existe
        """
        session = self._read_session(discard_malformed=True)
        if session is None:
            self._current = None
            return False

        now = self._clock.now()
        idle = now - session.last_activity_at
        if idle > self.session_timeout:
            self._clear_session()
            self._logger.info("Session expirée par inactivité", principal_id=session.principal_id)
            await self._record(
                SecurityEventType.SESSION_EXPIRED,
                {"provider": session.provider, "idle_seconds": int(idle.total_seconds())},
                principal=session.principal_id,
            )
            await self._remote_sign_out(session)
            return False

        if now > session.last_activity_at:
            session.last_activity_at = now
        self._save_session(session)
        self._current = session
        return True

    def get_current_principal(self) -> Optional[Session]:
        """
        Session courante, lue paresseusement depuis le stockage.

        Returns:
            Session ou None si anonyme (ou session persistée illisible)
        """
        if self._current is None:
            self._current = self._read_session(discard_malformed=False)
        return self._current

    @property
    def state(self) -> SessionState:
        if self._authenticating:
            return SessionState.AUTHENTICATING
        if self.get_current_principal() is not None:
            return SessionState.AUTHENTICATED
        return SessionState.ANONYMOUS

    async def logout(self) -> None:
        """
        Détruit la session locale puis tente la déconnexion distante.

        Un échec distant n'empêche jamais le nettoyage local.
        """
        await asyncio.shield(self._logout_locked())

    async def _logout_locked(self) -> None:
        async with self._lock:
            session = self.get_current_principal()
            self._clear_session()

            if session is None:
                return

            duration = self._clock.now() - session.issued_at
            self._logger.info("Déconnexion", principal_id=session.principal_id, provider=session.provider)
            await self._record(
                SecurityEventType.LOGOUT,
                {
                    "provider": session.provider,
                    "role": session.role.value,
                    "session_duration_seconds": int(duration.total_seconds()),
                },
                principal=session.principal_id,
            )
            await self._remote_sign_out(session)

    def handle_remote_sign_out(self) -> None:
        """Le service d'identité a clos la session: nettoyage local uniquement."""
        if self.get_current_principal() is not None:
            self._logger.info("Session close par le service d'identité")
        self._clear_session()

    # ──────────────────────────────────────────────────────────────────────
    # Autorisation
    # ──────────────────────────────────────────────────────────────────────

    def has_permission(self, capability: str) -> bool:
        return self._checker.has_permission(self.get_current_principal(), capability)

    def can_access_resource(self, resource: str) -> bool:
        session = self.get_current_principal()
        return self._checker.can_access_resource(session.role if session else None, resource)

    async def require_resource(self, resource: str) -> None:
        """
        Raises:
            AccessDeniedError: Ressource interdite (tentative journalisée)
        """
        if self.can_access_resource(resource):
            return

        session = self.get_current_principal()
        self._logger.warn("Accès non autorisé", resource=resource, role=session.role.value if session else None)
        await self._record(
            SecurityEventType.UNAUTHORIZED_ACCESS,
            {"resource": resource, "role": session.role.value if session else None},
            principal=session.principal_id if session else "",
        )
        raise AccessDeniedError(resource)

    # ──────────────────────────────────────────────────────────────────────
    # Compteurs
    # ──────────────────────────────────────────────────────────────────────

    def get_remaining_attempts(self, key: str) -> int:
        attempt = self._active_attempt(normalize_key(key))
        if attempt is None:
            return self.max_failed_attempts
        return max(0, self.max_failed_attempts - attempt.count)

    def get_lock_remaining(self, key: str) -> Optional[timedelta]:
        """
        Returns:
            Temps restant avant déverrouillage, None si non verrouillé
        """
        attempt = self._active_attempt(normalize_key(key))
        if attempt is None or attempt.count < self.max_failed_attempts:
            return None
        return self.lockout_window - (self._clock.now() - attempt.last_attempt_at)

    async def unlock(self, key: str) -> bool:
        """
        Supprime le compteur d'un compte (action coordinateur).

        Returns:
            True si un compteur existait

        Raises:
            PermissionDeniedError: Session courante non coordinatrice
        """
        self._require_coordinator("accounts:unlock")
        account = normalize_key(key)
        attempts = self._load_attempts()
        existed = attempts.pop(account, None) is not None
        if existed:
            self._save_attempts(attempts)
            session = self.get_current_principal()
            await self._record(
                SecurityEventType.ACCOUNT_UNLOCKED,
                {"account": account, "unlocked_by": session.principal_id},
                principal=account,
            )
        return existed

    # ──────────────────────────────────────────────────────────────────────
    # Comptes
    # ──────────────────────────────────────────────────────────────────────

    async def request_password_reset(self, email: str) -> bool:
        """
        Demande l'envoi d'un email de réinitialisation.

        Returns:
            True si la demande a été transmise, False si non prise en
            charge (table locale seule) ou en échec
        """
        account = normalize_key(email)
        if not isinstance(self._primary, IPasswordResetter):
            self._logger.info("Réinitialisation indisponible sans service d'identité", account=account)
            return False

        try:
            await self._primary.request_password_reset(account)
        except VerifierUnavailableError as e:
            self._logger.warn("Réinitialisation en échec", account=account, error=str(e))
            await self._record(SecurityEventType.PASSWORD_RESET_FAILED, {"error": str(e)}, principal=account)
            return False

        await self._record(SecurityEventType.PASSWORD_RESET_REQUESTED, {}, principal=account)
        return True

    async def create_user(
        self,
        email: str,
        secret: str,
        display_name: str,
        role: Role,
        permissions: Optional[List[str]] = None,
    ) -> Principal:
        """
        Crée un compte dans le service d'identité (action coordinateur).

        Raises:
            PermissionDeniedError: Session courante non coordinatrice
            UnsupportedOperationError: Vérificateur sans création de compte
            InvalidCredentialsError: Compte refusé par le service
            VerifierUnavailableError: Service injoignable
        """
        self._require_coordinator("users:create")
        if not isinstance(self._primary, IAccountProvisioner):
            raise UnsupportedOperationError("Création de compte non prise en charge par le vérificateur")

        account = normalize_key(email)
        role = Role.parse(role)
        creator = self.get_current_principal().principal_id
        try:
            principal = await self._primary.create_user(account, secret, display_name, role, list(permissions or []))
        except (InvalidCredentialsError, VerifierUnavailableError) as e:
            await self._record(
                SecurityEventType.USER_CREATION_FAILED,
                {"role": role.value, "error": str(e), "created_by": creator},
                principal=account,
            )
            raise

        await self._record(
            SecurityEventType.USER_CREATED,
            {"role": role.value, "created_by": creator},
            principal=account,
        )
        return principal

    # ──────────────────────────────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────────────────────────────

    def _require_coordinator(self, capability: str) -> None:
        session = self.get_current_principal()
        if session is None or session.role is not Role.COORDINATOR:
            raise PermissionDeniedError(capability)

    def _active_attempt(self, account: str) -> Optional[LoginAttempt]:
        attempt = self._load_attempts().get(account)
        if attempt is None:
            return None
        if self._clock.now() - attempt.last_attempt_at >= self.lockout_window:
            return None
        return attempt

    def _load_attempts(self) -> Dict[str, LoginAttempt]:
        raw = self._store.get(self.ATTEMPTS_KEY)
        if not raw:
            return {}

        try:
            data = json.loads(raw)
        except ValueError:
            self._logger.error("Compteurs de tentatives illisibles, réinitialisés")
            return {}
        if not isinstance(data, dict):
            self._logger.error("Compteurs de tentatives illisibles, réinitialisés")
            return {}

        attempts: Dict[str, LoginAttempt] = {}
        for account, value in data.items():
            try:
                attempts[account] = LoginAttempt.from_dict(value)
            except (KeyError, TypeError, ValueError):
                self._logger.error("Compteur de tentatives illisible ignoré", account=account)
        return attempts

    def _save_attempts(self, attempts: Dict[str, LoginAttempt]) -> None:
        if not attempts:
            self._store.remove(self.ATTEMPTS_KEY)
            return
        self._store.set(self.ATTEMPTS_KEY, json.dumps({k: v.to_dict() for k, v in attempts.items()}))

    def _read_session(self, discard_malformed: bool) -> Optional[Session]:
        raw = self._store.get(self.SESSION_KEY)
        if not raw:
            return None

        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, MalformedSessionError) as e:
            self._logger.warn("Session persistée illisible, traitée comme anonyme", reason=str(e))
            if discard_malformed:
                self._store.remove(self.SESSION_KEY)
            return None

    def _save_session(self, session: Session) -> None:
        self._store.set(self.SESSION_KEY, json.dumps(session.to_dict()))

    def _clear_session(self) -> None:
        self._current = None
        self._store.remove(self.SESSION_KEY)

    async def _remote_sign_out(self, session: Session) -> None:
        verifier = self._verifier_for(session.provider)
        if not isinstance(verifier, IRemoteSignOut):
            return

        try:
            await verifier.sign_out(session.access_token)
        except Exception as e:
            self._logger.warn("Déconnexion distante en échec, session locale close", provider=session.provider, error=str(e))

    def _verifier_for(self, provider: str) -> Optional[ICredentialVerifier]:
        for verifier in (self._primary, self._fallback):
            if verifier is not None and verifier.provider_name == provider:
                return verifier
        return None

    async def _record(self, event_type: SecurityEventType, payload: Dict[str, Any], principal: str = "") -> None:
        if self._audit is None:
            return

        try:
            await self._audit.record(event_type, payload, principal=principal)
        except Exception as e:
            self._logger.error("Journal de sécurité indisponible", event=event_type.value, error=str(e))
