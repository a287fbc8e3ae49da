"""Interactive CLI simulator — exercise the OTP API without a frontend."""

import asyncio
import uuid

import httpx
import uvicorn

from otp_lifecycle.database.engine import init_db

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"

BASE_URL = "http://127.0.0.1:8000"


async def call(client: httpx.AsyncClient, action: str, payload: dict) -> None:
    headers = {"correlationid": str(uuid.uuid4())}
    resp = await client.post(f"/api/otp/{action}", json=payload, headers=headers)
    data = resp.json()
    colour = GREEN if resp.status_code == 200 else RED
    print(f"{colour}{BOLD}[{resp.status_code}]{RESET} {data.get('message')}")
    for err in data.get("errors", []):
        print(f"{DIM}  - {'.'.join(err['path'])}: {err['message']}{RESET}")
    print()


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🔐  OTP Lifecycle — API Simulator")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    print(f"{DIM}Commands: send | resend | verify <code> | switch | quit{RESET}")
    print(f"{DIM}Set SKIP_EMAIL=true to have codes printed in the server logs{RESET}\n")

    email = input(f"{YELLOW}Email address to simulate: {RESET}").strip() or "test@example.com"
    print(f"{DIM}Simulating as {email}{RESET}\n")

    # ── Start the API in the background ──────────────────
    from otp_lifecycle.main import app

    config = uvicorn.Config(app, host="127.0.0.1", port=8000, log_level="warning")
    server = uvicorn.Server(config)
    server_task = asyncio.create_task(server.serve())

    # Give the server a moment to start
    await asyncio.sleep(0.5)

    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        while True:
            try:
                user_input = input(f"{BLUE}{BOLD}>{RESET} ").strip()
            except (KeyboardInterrupt, EOFError):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            if not user_input:
                continue

            command, _, arg = user_input.partition(" ")
            command = command.lower()

            if command == "quit":
                print(f"{DIM}Goodbye!{RESET}")
                break
            if command == "switch":
                email = input(f"{YELLOW}New email address: {RESET}").strip()
                print(f"{DIM}Switched to {email}{RESET}\n")
            elif command in ("send", "resend"):
                await call(client, command, {"email": email})
            elif command == "verify":
                await call(client, "verify", {"email": email, "otp": arg.strip()})
            else:
                print(f"{DIM}Unknown command: {command}{RESET}\n")

    # Shut down the background server
    server.should_exit = True
    await server_task


if __name__ == "__main__":
    asyncio.run(main())
