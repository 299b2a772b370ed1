"""
JARVIS TEST SCRIPT - Interactive Chat Client
============================================

PURPOSE:
Command-line client for trying the J.A.R.V.I.S API without a frontend. Sends
messages to /api/chat, keeps the conversation id the server returns, and can
list, open and delete conversations.

USAGE:
    python test.py

    Make sure the server is running first: python run.py

COMMANDS:
    /list       - List your conversations (most recent first)
    /open <id>  - Continue an existing conversation
    /history    - Show the messages of the current conversation
    /search <q> - Search your messages
    /delete     - Delete the current conversation
    /new        - Start a new conversation
    /quit       - Exit

The client acts as the demo user unless GOOGLE_ID is set in the environment.
"""

import os

import requests

try:
    from config import ASSISTANT_NAME
except ImportError:
    ASSISTANT_NAME = "JARVIS"


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
BASE_URL = os.getenv("JARVIS_URL", "http://localhost:8000")
HEADERS = {"X-Google-Id": os.environ["GOOGLE_ID"]} if os.getenv("GOOGLE_ID") else {}
# Conversation the next message goes to; None starts a new one.
CONVERSATION_ID = None


def print_header():
    print("\n" + "=" * 60)
    print(f"🤖 {ASSISTANT_NAME} - Interactive Chat")
    print("=" * 60)
    print("\nCommands:")
    print("  /list - Your conversations     /open <id> - Continue one")
    print("  /history - Current messages    /search <q> - Search messages")
    print("  /delete - Delete current       /new - New conversation")
    print("  /quit - Exit")
    print("=" * 60 + "\n")


def _error_text(response) -> str:
    try:
        detail = response.json().get("detail")
        if isinstance(detail, str):
            return f"❌ {detail}"
    except ValueError:
        pass
    return f"❌ Error: {response.status_code} - {response.text}"


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def send_message(content):
    """POST /api/chat and return the assistant's reply (the last message)."""
    global CONVERSATION_ID

    body = {"content": content}
    if CONVERSATION_ID is not None:
        body["conversationId"] = CONVERSATION_ID

    try:
        response = requests.post(f"{BASE_URL}/api/chat", json=body, headers=HEADERS, timeout=60)
    except requests.exceptions.ConnectionError:
        return "❌ Cannot connect to backend. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "❌ Request timed out."

    if response.status_code != 200:
        return _error_text(response)

    data = response.json()
    CONVERSATION_ID = data["conversationId"]
    messages = data.get("messages", [])
    return messages[-1]["content"] if messages else "No response"


def list_conversations():
    response = requests.get(f"{BASE_URL}/api/conversations", headers=HEADERS, timeout=10)
    if response.status_code != 200:
        return _error_text(response)
    conversations = response.json()
    if not conversations:
        return "No conversations yet"
    return "\n".join(f"  [{c['id']}] {c['title']}  (updated {c['updatedAt']})" for c in conversations)


def get_history():
    if CONVERSATION_ID is None:
        return "No active conversation"
    response = requests.get(
        f"{BASE_URL}/api/conversations/{CONVERSATION_ID}/messages", headers=HEADERS, timeout=10
    )
    if response.status_code != 200:
        return _error_text(response)

    output = "\n📜 Conversation history:\n" + "-" * 60 + "\n"
    for i, msg in enumerate(response.json(), 1):
        role = "You" if msg.get("role") == "user" else ASSISTANT_NAME
        output += f"{i}. {role}: {msg.get('content', '')}\n"
        for f in msg.get("files", []):
            output += f"     📎 {f['fileName']} ({f['fileSize']} bytes) {BASE_URL}{f['fileUrl']}\n"
    return output + "-" * 60


def search_messages(query):
    response = requests.get(f"{BASE_URL}/api/messages/search", params={"q": query}, headers=HEADERS, timeout=10)
    if response.status_code != 200:
        return _error_text(response)
    hits = response.json()
    if not hits:
        return "No matching messages"
    return "\n".join(f"  [conversation {m['conversationId']}] {m['role']}: {m['content'][:80]}" for m in hits)


def delete_conversation():
    global CONVERSATION_ID
    if CONVERSATION_ID is None:
        return "No active conversation"
    response = requests.delete(f"{BASE_URL}/api/conversations/{CONVERSATION_ID}", headers=HEADERS, timeout=10)
    if response.status_code != 200:
        return _error_text(response)
    CONVERSATION_ID = None
    return "🗑️  Conversation deleted"


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    global CONVERSATION_ID
    print_header()

    while True:
        try:
            user_input = input("\nYou: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n👋 Goodbye!")
            break

        if not user_input:
            continue
        try:
            if user_input in ("/quit", "/exit"):
                print("\n👋 Goodbye!")
                break
            elif user_input == "/list":
                print(list_conversations())
            elif user_input.startswith("/open "):
                CONVERSATION_ID = int(user_input.split(maxsplit=1)[1])
                print(f"✅ Continuing conversation {CONVERSATION_ID}")
            elif user_input == "/history":
                print(get_history())
            elif user_input.startswith("/search "):
                print(search_messages(user_input.split(maxsplit=1)[1]))
            elif user_input == "/delete":
                print(delete_conversation())
            elif user_input == "/new":
                CONVERSATION_ID = None
                print("🔄 Next message starts a new conversation")
            elif user_input.startswith("/"):
                print(f"❌ Unknown command: {user_input}")
            else:
                print(f"🤖 {ASSISTANT_NAME}: {send_message(user_input)}")
        except (requests.exceptions.RequestException, ValueError) as e:
            print(f"❌ Error: {e}")


if __name__ == "__main__":
    main()
