#!/usr/bin/env python3

import asyncio
import sys
import os

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from tickchat.database import create_tables, AsyncSessionLocal
from tickchat.repositories.user_repository import UserRepository
from tickchat.repositories.message_repository import MessageRepository
from tickchat.schemas.user import UserCreate

async def create_test_users():
    async with AsyncSessionLocal() as db:
        user_repo = UserRepository(db)

        created_users = []
        for username in ["alice", "bob", "charlie", "diana"]:
            existing_user = await user_repo.get_by_username(username)
            if not existing_user:
                user_create = UserCreate(
                    username=username,
                    email=f"{username}@example.com",
                    full_name=username.capitalize(),
                    password="password123"
                )
                user = await user_repo.create(user_create)
                created_users.append(user)
                print(f"Created user: {user.username} (ID: {user.id})")
            else:
                created_users.append(existing_user)
                print(f"User {username} exists (ID: {existing_user.id})")

        return created_users

async def create_test_messages(users):
    async with AsyncSessionLocal() as db:
        message_repo = MessageRepository(db)
        alice, bob, charlie, diana = users

        messages_data = [
            (alice, bob, "Hey Bob! How's it going?"),
            (bob, alice, "Hi Alice! All good, thanks!"),
            (alice, bob, "Great! Ready to work on the project?"),
            (charlie, diana, "Diana, can we discuss project details?"),
            (diana, charlie, "Sure! I have a few ideas"),
        ]

        created_messages = []
        for sender, receiver, text in messages_data:
            message = await message_repo.create(sender.id, receiver.id, text=text)
            created_messages.append(message)
            print(f"Created message from {sender.username} to {receiver.username}: '{text[:30]}...'")

        return created_messages

async def main():
    print("Creating test data for TickChat...\n")

    try:
        print("1. Creating database tables...")
        await create_tables()
        print("Tables created\n")

        print("2. Creating test users...")
        users = await create_test_users()
        print(f"Created/found {len(users)} users\n")

        print("3. Creating test messages...")
        messages = await create_test_messages(users)
        print(f"Created {len(messages)} messages\n")

        print("Test data created successfully!")
        print("\nUsers:")
        for user in users:
            print(f"  - {user.username} (ID: {user.id}) - password: password123")

        print("\nUseful links:")
        print("  - API docs: http://localhost:8000/docs")
        print("  - WebSocket: ws://localhost:8000/api/v1/ws/chat?token=<access token>")

    except Exception as e:
        print(f"Error creating test data: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

if __name__ == "__main__":
    asyncio.run(main())
