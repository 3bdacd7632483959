"""Ordered selector candidates for the eproc portal and its Keycloak login.

Each tuple is tried in order; the first candidate present on the page wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class LoginSelectors:
    username: Tuple[str, ...] = (
        "#username",
        'input[name="username"]',
        "#txtUsuario",
        'input[name="txtUsuario"]',
        "#txtLogin",
        'input[name="txtLogin"]',
        "#login",
        'input[name="login"]',
        'input[type="text"]:not([name=""])',
    )
    # Keycloak renders a masked text input instead of type=password on some
    # themes, so those variants come first.
    password: Tuple[str, ...] = (
        "input#password.masked",
        'input#password[type="text"]',
        'input[type="password"][name="password"]',
        "#pwdSenha",
        'input[type="password"]',
    )
    totp: Tuple[str, ...] = (
        "#txtToken",
        'input[name="txtToken"]',
        'input[name="token"]',
        'input[name="otp"]',
        "#otp",
    )
    submit: Tuple[str, ...] = (
        "#kc-login",
        "input#kc-login",
        'input[name="login"]',
        "#btnEntrar",
        'input[type="submit"]',
        'button[type="submit"]',
    )
    submit_text: str = "entrar"
    error: str = ".alert-error, .alert-danger, .mensagem-erro, .kc-feedback-text, .erro"
    login_url_markers: Tuple[str, ...] = ("keycloak", "usuario_login_form", "acao=principal")


@dataclass(frozen=True)
class PortalSelectors:
    panel_link_text: str = "Painel do Advogado"
    panel_href_marker: str = "painel_advogado"
    deadline_row_label: str = "Processos com prazo em aberto"
    list_url_markers: Tuple[str, ...] = ("prazos_abertos", "citacao_intimacao")
    list_table: str = "table.infraTable"


LOGIN_SELECTORS = LoginSelectors()
PORTAL_SELECTORS = PortalSelectors()

__all__ = [
    "LoginSelectors",
    "PortalSelectors",
    "LOGIN_SELECTORS",
    "PORTAL_SELECTORS",
]
