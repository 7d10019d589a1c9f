"""Event names carried over the live connection, shared by server and client."""

ONLINE_USERS_EVENT = "getOnlineUsers"
NEW_MESSAGE_EVENT = "newMessage"
MESSAGE_SEEN_EVENT = "messageSeen"
