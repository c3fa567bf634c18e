import sys

import httpx

BASE_URL = "http://127.0.0.1:4001/api/v1"


def main() -> None:
    if len(sys.argv) < 3:
        print("usage: python scripts/send_chat.py <token> <opportunity-id> [text]")
        sys.exit(1)
    token, opportunity_id = sys.argv[1], sys.argv[2]
    text = sys.argv[3] if len(sys.argv) > 3 else "Hello from script"
    resp = httpx.post(
        f"{BASE_URL}/opportunities/{opportunity_id}/chat/messages",
        json={"text": text},
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    print(resp.status_code)
    print(resp.text)


if __name__ == "__main__":
    main()
