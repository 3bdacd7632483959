from __future__ import annotations

import pyotp
import pytest

from app.eproc import auth, config
from app.eproc.errors import AuthenticationFailure, ErrorCode, FieldNotFound

SECRET = "JBSWY3DPEHPK3PXP"


class _EmptyLocator:
    def count(self) -> int:
        return 0


class _EmptyPage:
    """Page stand-in on which no selector matches."""

    def __init__(self) -> None:
        self.queried: list[str] = []

    def locator(self, selector: str) -> _EmptyLocator:
        self.queried.append(selector)
        return _EmptyLocator()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("jbsw y3dp-ehpk_3pxp", SECRET),
        ("  JBSWY3DPEHPK3PXP\n", SECRET),
        (None, ""),
    ],
)
def test_sanitize_totp_secret(raw, expected) -> None:
    assert auth.sanitize_totp_secret(raw) == expected


def test_generate_totp_matches_pyotp() -> None:
    moment = 1_700_000_000
    code = auth.generate_totp("jbsw-y3dp ehpk3pxp", for_time=moment)

    assert code == pyotp.TOTP(SECRET).at(moment)
    assert len(code) == 6 and code.isdigit()


@pytest.mark.parametrize(
    "url, error_text, state, reason",
    [
        ("https://eproc1g.tjrs.jus.br/eproc/controlador.php?acao=painel_adv", None, auth.LoginState.AUTHENTICATED, None),
        ("https://sso.tjrs.jus.br/auth/realms/keycloak/login-actions", None, auth.LoginState.FAILED, "still_on_login"),
        ("https://eproc1g.tjrs.jus.br/eproc/", "Usuário ou senha inválidos", auth.LoginState.FAILED, "Usuário ou senha inválidos"),
    ],
)
def test_classify_outcome(url, error_text, state, reason) -> None:
    outcome = auth.classify_outcome(url, error_text)
    assert outcome.state is state
    assert outcome.reason == reason
    assert outcome.ok is (state is auth.LoginState.AUTHENTICATED)


def test_fill_input_raises_when_no_candidate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DEBUG_MODE", False)
    page = _EmptyPage()

    with pytest.raises(FieldNotFound) as excinfo:
        auth.fill_input(page, ("#username", "#txtUsuario"), "user", field="username")

    assert excinfo.value.field == "username"
    assert excinfo.value.candidates == ("#username", "#txtUsuario")
    assert excinfo.value.error_code == ErrorCode.AUTH_FIELD_NOT_FOUND
    assert page.queried == ["#username", "#txtUsuario"]


def test_authenticate_retries_once(monkeypatch: pytest.MonkeyPatch) -> None:
    outcomes = [
        auth.LoginOutcome(auth.LoginState.FAILED, reason="still_on_login"),
        auth.LoginOutcome(auth.LoginState.AUTHENTICATED, url="https://eproc/painel"),
    ]
    calls: list[dict] = []

    def fake_attempt(page, **kwargs):
        calls.append(kwargs)
        return outcomes.pop(0)

    monkeypatch.setattr(auth, "attempt_login", fake_attempt)
    sleeps: list[float] = []

    outcome = auth.authenticate(object(), username="u", password="p", totp_secret=SECRET, sleep=sleeps.append)

    assert outcome.ok
    assert len(calls) == 2
    assert calls[0] == {"username": "u", "password": "p", "totp_secret": SECRET}
    assert sleeps == [config.LOGIN_RETRY_DELAY_SECONDS]


def test_authenticate_gives_up_after_retry(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[int] = []

    def fake_attempt(page, **kwargs):
        attempts.append(1)
        return auth.LoginOutcome(auth.LoginState.FAILED, reason="still_on_login")

    monkeypatch.setattr(auth, "attempt_login", fake_attempt)

    with pytest.raises(AuthenticationFailure) as excinfo:
        auth.authenticate(object(), username="u", password="p", totp_secret=SECRET, sleep=lambda _: None)

    assert len(attempts) == 1 + config.LOGIN_MAX_RETRIES
    assert excinfo.value.error_code == ErrorCode.AUTH_STILL_ON_LOGIN


PORTAL_URL = "https://eproc1g.tjrs.jus.br/eproc/controlador.php?acao=painel_adv"
KEYCLOAK_URL = "https://keycloak.tjrs.jus.br/realms/eproc/protocol/openid-connect/auth"


class _LoginLocator:
    def __init__(self, page: "_FakeLoginPage", selector: str) -> None:
        self.page = page
        self.selector = selector

    def count(self) -> int:
        return 1 if self.selector in self.page.screen["present"] else 0

    @property
    def first(self) -> "_LoginLocator":
        return self

    def click(self) -> None:
        self.page.submit(self.selector)

    def fill(self, value: str) -> None:
        self.page.fills.append((self.selector, value))

    def inner_text(self) -> str:
        return self.page.screen.get("error", "")


class _Keyboard:
    def __init__(self, page: "_FakeLoginPage") -> None:
        self.page = page

    def press(self, key: str) -> None:
        self.page.submit(f"key:{key}")


class _FakeLoginPage:
    """Walks through ``screens``; every submit moves to the next one."""

    def __init__(self, screens: list[dict]) -> None:
        self.screens = screens
        self.index = 0
        self.fills: list[tuple[str, str]] = []
        self.submits: list[str] = []
        self.keyboard = _Keyboard(self)

    @property
    def screen(self) -> dict:
        return self.screens[self.index]

    @property
    def url(self) -> str:
        return self.screen["url"]

    def submit(self, how: str) -> None:
        self.submits.append(how)
        self.index = min(self.index + 1, len(self.screens) - 1)

    def goto(self, url: str, **kwargs) -> None:
        return None

    def wait_for_load_state(self, state: str, timeout: int | None = None) -> None:
        return None

    def locator(self, selector: str) -> _LoginLocator:
        return _LoginLocator(self, selector)

    def get_by_role(self, role: str, name=None) -> _LoginLocator:
        return _LoginLocator(self, f"role:{role}")

    def evaluate(self, script: str, arg=None) -> bool:
        selector, value = arg
        self.fills.append((selector, value))
        return True

    def is_closed(self) -> bool:
        return False


PASSWORD = 'input[type="password"]'


@pytest.fixture
def login_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DEBUG_MODE", False)
    monkeypatch.setattr(config, "FIELD_DELAY_RANGE", (0.0, 0.0))
    monkeypatch.setattr(auth, "generate_totp", lambda secret, **kwargs: "123456")


def test_attempt_login_totp_on_first_screen(login_env) -> None:
    page = _FakeLoginPage(
        [
            {"url": KEYCLOAK_URL, "present": {"#username", PASSWORD, "#txtToken", "#kc-login"}},
            {"url": PORTAL_URL, "present": set()},
        ]
    )

    outcome = auth.attempt_login(page, username="u", password="p", totp_secret=SECRET)

    assert outcome.ok
    assert outcome.url == PORTAL_URL
    assert page.fills == [("#username", "u"), (PASSWORD, "p"), ("#txtToken", "123456")]
    assert page.submits == ["#kc-login"]


def test_attempt_login_totp_on_second_screen(login_env) -> None:
    page = _FakeLoginPage(
        [
            {"url": KEYCLOAK_URL, "present": {"#username", PASSWORD, "role:button"}},
            {"url": KEYCLOAK_URL + "/otp", "present": {'input[name="otp"]', "#kc-login"}},
            {"url": PORTAL_URL, "present": set()},
        ]
    )

    outcome = auth.attempt_login(page, username="u", password="p", totp_secret=SECRET)

    assert outcome.ok
    assert page.fills[-1] == ('input[name="otp"]', "123456")
    assert page.submits == ["role:button", "#kc-login"]


def test_attempt_login_without_totp_field_submits_with_enter(login_env) -> None:
    page = _FakeLoginPage(
        [
            {"url": KEYCLOAK_URL, "present": {"#txtUsuario", "#pwdSenha"}},
            {"url": KEYCLOAK_URL, "present": set()},
        ]
    )

    outcome = auth.attempt_login(page, username="u", password="p", totp_secret=SECRET)

    assert page.fills == [("#txtUsuario", "u"), ("#pwdSenha", "p")]
    assert page.submits == ["key:Enter"]
    assert outcome.state is auth.LoginState.FAILED
    assert outcome.reason == "still_on_login"


def test_attempt_login_reads_error_banner(login_env) -> None:
    page = _FakeLoginPage(
        [
            {"url": KEYCLOAK_URL, "present": {"#username", PASSWORD, "#kc-login"}},
            {
                "url": PORTAL_URL,
                "present": {auth.LOGIN_SELECTORS.error},
                "error": "Usuário ou senha inválidos.",
            },
        ]
    )

    outcome = auth.attempt_login(page, username="u", password="bad", totp_secret=SECRET)

    assert outcome.state is auth.LoginState.FAILED
    assert outcome.reason == "Usuário ou senha inválidos."
