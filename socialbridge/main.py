# socialbridge/main.py
import asyncio, sys
import logging
import shlex

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.patch_stdout import patch_stdout

from socialbridge.adapter import SocialAdapter
from socialbridge.core.config import Config, setup_logging
from socialbridge.core.errors import SocialError
from socialbridge.irc_transport import IrcTransport
from socialbridge.ui_ptk.login_view import PromptLoginView
from socialbridge.ui_ptk.views import contact_lines, event_line

HELP = """commands:
  /login [#room]      connect (asks for credentials unless cached)
  /logout             disconnect and forget credentials
  /msg <nick> <text>  send a direct message
  /contacts           list known contacts
  /whois <nick>       ask the server for a user's profile
  /forget             clear cached credentials
  /quit               exit"""


def _print_event(ev):
    line = event_line(ev)
    if line is not None:
        print_formatted_text(line)


async def handle_command(adapter: SocialAdapter, cfg: Config, line: str) -> bool:
    """Runs one console command; returns False when the console should exit."""
    try:
        parts = shlex.split(line)
    except ValueError as e:
        print(f"parse error: {e}")
        return True
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]

    try:
        if cmd == "/quit":
            return False
        if cmd == "/help":
            print(HELP)
        elif cmd == "/login":
            room = args[0] if args else None
            me = await adapter.login(cfg.login_options(room=room))
            print(f"online as {me.user_id}")
        elif cmd == "/logout":
            await adapter.logout()
            print("logged out")
        elif cmd == "/msg":
            if len(args) < 2:
                print("usage: /msg <nick> <text>")
            else:
                await adapter.send_message(args[0], " ".join(args[1:]))
        elif cmd == "/contacts":
            contacts = await adapter.get_contacts()
            if not contacts:
                print("no contacts")
            for fl in contact_lines(contacts.values(), adapter.session.self_id):
                print_formatted_text(fl)
        elif cmd == "/whois":
            if args:
                await adapter.request_user_status(args[0])
        elif cmd == "/forget":
            await adapter.clear_cached_credentials()
            print("credentials cleared")
        else:
            print(f"unknown command {cmd}; /help lists them")
    except SocialError as e:
        print(f"[{e.errcode.name}] {e.message}")
    return True


async def main():
    try:
        cfg = Config.load()
    except Exception:
        cfg = Config()
    setup_logging(cfg)
    logging.info("socialbridge starting up")

    adapter = SocialAdapter(
        IrcTransport(),
        view_factory=lambda: PromptLoginView(cfg),
        dispatch_event=_print_event,
        cfg=cfg,
    )
    prompt = PromptSession("socialbridge> ")
    print(HELP)

    async with adapter:
        try:
            while True:
                with patch_stdout():
                    line = await prompt.prompt_async()
                if not await handle_command(adapter, cfg, line.strip()):
                    break
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            await adapter.logout()
            try:
                cfg.save()
            except OSError:
                logging.exception("saving config failed")
    logging.info("socialbridge shut down")


def run():
    if sys.platform.startswith("win"):
        try:
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]
        except AttributeError:
            pass
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass


if __name__ == "__main__":
    run()
