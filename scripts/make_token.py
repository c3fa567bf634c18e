import sys

from volunteer_chat.core.security import create_access_token

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python scripts/make_token.py <profile-id>")
        sys.exit(1)
    print(create_access_token({"sub": sys.argv[1]}))
