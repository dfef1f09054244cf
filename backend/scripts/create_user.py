#!/usr/bin/env python3
"""
Create a dashboard user.

Usage:
    python create_user.py --email user@example.com --password 's3cret'
    python create_user.py --email user@example.com --name "Jane Doe"   # prompts for the password
"""

import argparse
import getpass
import os
import sys

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mailrelay.db.session import SessionLocal, init_db
from mailrelay.services.auth_service import create_user


def main():
    parser = argparse.ArgumentParser(description="Create a mailrelay user")
    parser.add_argument('--email', required=True, help='User email address')
    parser.add_argument('--password', help='Password (prompted for when omitted)')
    parser.add_argument('--name', help='Display name')

    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("❌ Error: Password must not be empty")
        sys.exit(1)

    init_db()
    db = SessionLocal()
    try:
        user = create_user(args.email, password, name=args.name, db=db)
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(1)
    finally:
        db.close()

    print(f"✓ User created: {user.email} (ID: {user.id})")


if __name__ == '__main__':
    main()
