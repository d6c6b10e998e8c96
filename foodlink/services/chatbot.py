"""FAQ chatbot: the first keyword pattern that matches picks the intent. No memory across turns."""
import re
from dataclasses import dataclass

KNOWLEDGE = {
    "how_it_works": (
        "Create a post with food details and pickup window. Receivers nearby request it. "
        "You accept, coordinate pickup, then mark done."
    ),
    "safety": "Meet in public, label allergens, keep food hygienic. Don't share sensitive personal info.",
    "create_post": (
        "Go to Create Post, add title, quantity, time window, tags (veg/non-veg), address, "
        "and an image URL. Optionally use your location."
    ),
    "nearby": "Open Receiver Dashboard, allow location, set a distance filter to see donations in range.",
    "password_reset": "Use 'Forgot password' on the Auth page to receive a reset email.",
    "profile": "Open Profile to view/edit your name and phone. Your role is chosen once at sign up.",
    "google_auth": "On the Auth page, click 'Continue with Google' to sign up or log in using your Google account.",
    "guest": "Use 'Continue as Guest' to browse without an account. Posting and requesting require sign in.",
    "images_free": (
        "To avoid paid storage, paste image URLs when creating a post. "
        "You can host images on any free CDN or existing website."
    ),
}

FALLBACK_REPLY = (
    "I can help with posting, nearby search, safety, Google/guest sign-in, "
    "password reset, and profile editing. Ask me anything."
)

# Order matters: first match wins
INTENT_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"create|post|donat(e|ion)"), "create_post"),
    (re.compile(r"nearby|around|close|range|distance|map"), "nearby"),
    (re.compile(r"how.*work|what.*do|help|guide"), "how_it_works"),
    (re.compile(r"safe|safety|allergen|policy"), "safety"),
    (re.compile(r"(reset|forgot).*password"), "password_reset"),
    (re.compile(r"profile|account|name|role"), "profile"),
    (re.compile(r"google|gmail|oauth|signin|sign in|login"), "google_auth"),
    (re.compile(r"guest|browse|without account"), "guest"),
    (re.compile(r"(image|photo|picture).*(free|storage|cost|paid)"), "images_free"),
]


@dataclass(frozen=True)
class ChatReply:
    reply: str
    intent: str | None


def reply_for(message: str) -> ChatReply:
    q = message.lower()
    for pattern, intent in INTENT_PATTERNS:
        if pattern.search(q):
            reply = KNOWLEDGE[intent]
            if intent == "create_post":
                reply = f"{reply}\nTip: {KNOWLEDGE['images_free']}"
            return ChatReply(reply=reply, intent=intent)
    return ChatReply(reply=FALLBACK_REPLY, intent=None)
