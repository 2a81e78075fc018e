# socialbridge/ui_ptk/login_view.py
from __future__ import annotations
import asyncio
import logging
from typing import Any, Callable, Optional

from prompt_toolkit.application import Application
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import Layout
from prompt_toolkit.layout.containers import HSplit
from prompt_toolkit.widgets import Button, Dialog, Label, TextArea

logger = logging.getLogger(__name__)


class LoginForm:
    """The irc-login form: user id, host and port.

    Answers once with ``{"cmd": "auth", "message": {...}}``, ``{"cmd": "cancel"}``
    or ``{"cmd": "error", ...}``. An empty port is passed through; the session
    applies its default.
    """

    def __init__(self, on_message: Callable[[dict], None], user_id: str = "", host: str = "", port: str = ""):
        self._on_message = on_message
        self._answered = False
        self.user_id = TextArea(text=user_id, height=1, multiline=False)
        self.host = TextArea(text=host, height=1, multiline=False)
        self.port = TextArea(text=port, height=1, multiline=False)

        kb = KeyBindings()
        @kb.add(Keys.Enter)
        def _(event):
            self.submit()
        for ta in (self.user_id, self.host, self.port):
            ta.control.key_bindings = kb  # type: ignore[attr-defined]

        self.dialog = Dialog(
            title="IRC login",
            body=HSplit([
                Label("User id"), self.user_id,
                Label("Host"), self.host,
                Label("Port (blank for default)"), self.port,
            ], padding=0),
            buttons=[Button(text="OK", handler=self.submit), Button(text="Cancel", handler=self.cancel)],
            with_background=True,
        )

    @property
    def answered(self) -> bool:
        return self._answered

    def _answer(self, msg: dict):
        if self._answered:
            return
        self._answered = True
        self._on_message(msg)

    def submit(self):
        self._answer({"cmd": "auth", "message": {
            "userId": self.user_id.text.strip(),
            "host": self.host.text.strip(),
            "port": self.port.text.strip(),
        }})

    def cancel(self):
        self._answer({"cmd": "cancel"})

    def fail(self, err: Any):
        self._answer({"cmd": "error", "message": str(err)})


class PromptLoginView:
    """Credential view shown as a prompt_toolkit dialog.

    ``show`` returns immediately; the answer arrives through ``on_message``
    once the user submits or cancels. ``close`` tears the dialog down and
    suppresses any later answer.
    """

    def __init__(self, cfg=None):
        self.cfg = cfg
        self.form: Optional[LoginForm] = None
        self.app: Optional[Application] = None
        self._task: Optional[asyncio.Future] = None
        self._closed = False
        self._exited = False

    def show(self, form_id: str, on_message: Callable[[dict], None]):
        logger.debug("showing %s", form_id)
        cfg = self.cfg
        self.form = LoginForm(
            self._relay(on_message),
            user_id=(getattr(cfg, "last_user_id", None) or ""),
            host=(getattr(cfg, "last_host", None) or ""),
            port=(getattr(cfg, "last_port", None) or ""),
        )

        kb = KeyBindings()
        @kb.add("escape")
        def _(event):
            self.form.cancel()

        @kb.add("tab")
        def _(event):
            event.app.layout.focus_next()

        @kb.add("s-tab")
        def _(event):
            event.app.layout.focus_previous()

        self.app = Application(
            layout=Layout(self.form.dialog, focused_element=self.form.user_id),
            key_bindings=kb,
            mouse_support=True,
            full_screen=False,
        )
        self._task = asyncio.ensure_future(self._run())

    async def _run(self):
        try:
            await self.app.run_async()
        except Exception as e:
            logger.exception("login dialog failed")
            if self.form is not None:
                self.form.fail(e)

    def _relay(self, on_message):
        def _cb(msg: dict):
            if self._closed:
                return
            if msg.get("cmd") == "auth" and self.cfg is not None and hasattr(self.cfg, "remember"):
                m = msg.get("message") or {}
                self.cfg.remember(m.get("userId", ""), m.get("host", ""), m.get("port"))
            self._exit_app()
            on_message(msg)
        return _cb

    def _exit_app(self):
        if self._exited or self.app is None:
            return
        self._exited = True
        if self.app.is_running:
            self.app.exit()
        elif self._task is not None:
            self._task.cancel()

    def close(self):
        self._closed = True
        self._exit_app()
