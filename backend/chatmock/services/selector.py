"""Canned reply corpus and keyword-driven reply selection."""

from __future__ import annotations

import random
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

from ..schemas.chat import ChatRequest

GENERAL = "general"
CODE = "code"
TECHNICAL = "technical"

DEFAULT_USER_TEXT = "Hello"

FILE_KEYWORDS = ("file",)
CODE_KEYWORDS = ("code", "javascript", "python")
TECHNICAL_KEYWORDS = ("technical", "performance", "optimize")
MARKDOWN_KEYWORDS = ("markdown",)

INTEGRATION_TEXT = (
    "Integration is simple! Just include the script and initialize:\n\n"
    "```html\n<script src=\"portable-chatbot.js\" \n        data-chatbot-endpoint=\"/api/chat\"\n"
    "        data-chatbot-heading=\"My Bot\"></script>\n```\n\n"
    "Or programmatically:\n\n"
    "```javascript\nconst bot = createChatbot({\n    endpoint: '/api/chat',\n    theme: 'dark'\n});\n```"
)

MARKDOWN_TEXT = (
    "Here's some **markdown** formatting:\n\n# Header 1\n## Header 2\n\n"
    "- List item 1\n- List item 2\n\n*Italic text* and **bold text**\n\n"
    "> This is a blockquote\n\nAnd here's a [link](https://example.com)!"
)

_CATEGORIES = {
    GENERAL: (
        "I'm a demo AI assistant! I can help you with various questions and tasks. What would you like to know?",
        "This is a simulated response from the Professional AI Chatbot. In a real implementation, I would be "
        "powered by your choice of AI model through your backend API.",
        "Great question! As a demo bot, I can show you how markdown formatting works:\n\n**Bold text**\n"
        "*Italic text*\n\n```javascript\nconsole.log('Code highlighting!');\n```\n\nAnd even lists:\n"
        "- Feature 1\n- Feature 2\n- Feature 3",
        "I notice this is a demo environment. The chatbot supports:\n\n"
        "🎨 **Rich Formatting** - Markdown and code highlighting\n"
        "📁 **File Uploads** - Attach documents and images\n"
        "🎯 **Customizable** - Themes, sizing, positioning\n"
        "💾 **Export** - Download conversation history\n"
        "🌙 **Dark Mode** - Light/dark theme switching",
        "This chatbot component is built with vanilla JavaScript and can be integrated into any web "
        "application. It's framework-agnostic and works with React, Vue, Angular, or plain HTML!",
        "Hello! I'm a demo AI assistant. How can I help you today?",
        "That's an interesting question! Let me think about that for a moment.",
        "I'm here to help with any questions you might have.",
        "I understand what you're asking. Here's what I think about that topic.",
        "Thanks for sharing that with me. I appreciate your input.",
        "That's a great point! Let me expand on that idea.",
        "I can see why that would be important to you.",
    ),
    CODE: (
        "Here's a Python example:\n\n```python\ndef hello_world():\n    print('Hello from the AI Chatbot!')\n"
        "    return 'Demo response'\n\nhello_world()\n```",
        "And here's some JavaScript:\n\n```javascript\nconst chatbot = createChatbot({\n"
        "    endpoint: '/api/chat',\n    theme: 'dark',\n    heading: 'My AI Assistant'\n});\n\n"
        "chatbot.show();\n```",
        "CSS styling example:\n\n```css\n.my-custom-theme {\n    --primary-color: #6366f1;\n"
        "    --background: #f8fafc;\n    border-radius: 16px;\n}\n```",
        "Here's a code example:\n\n```javascript\nfunction greet(name) {\n    return `Hello, ${name}!`;\n}\n\n"
        "console.log(greet(\"World\"));\n```\n\n"
        "This function demonstrates basic JavaScript syntax with template literals.",
    ),
    TECHNICAL: (
        "The chatbot uses modern web standards including:\n\n- **Web Components** for encapsulation\n"
        "- **CSS Custom Properties** for theming\n- **Intersection Observer** for performance\n"
        "- **File API** for attachments\n- **Local Storage** for persistence",
        "Performance optimizations include:\n\n✅ Lazy loading of resources\n✅ Efficient DOM manipulation\n"
        "✅ Debounced resize handlers\n✅ Minimal bundle size (31.3KB)\n✅ Tree-shakeable modules",
    ),
}


class ResponseCorpus:
    """Read-only category -> candidate replies, plus the fixed texts.

    Built once and shared by every request; nothing mutates it afterwards.
    """

    def __init__(
        self,
        categories: Mapping[str, Sequence[str]],
        integration_text: str = INTEGRATION_TEXT,
        markdown_text: str = MARKDOWN_TEXT,
    ):
        frozen = {}
        for name in (GENERAL, CODE, TECHNICAL):
            entries = tuple(categories.get(name, ()))
            if not entries:
                raise ValueError(f"Response category {name!r} must contain at least one reply")
            frozen[name] = entries
        for name, entries in categories.items():
            if name not in frozen:
                if not entries:
                    raise ValueError(f"Response category {name!r} must contain at least one reply")
                frozen[name] = tuple(entries)
        self._categories = MappingProxyType(frozen)
        self.integration_text = integration_text
        self.markdown_text = markdown_text

    @property
    def categories(self) -> Mapping[str, Tuple[str, ...]]:
        return self._categories

    def __getitem__(self, name: str) -> Tuple[str, ...]:
        return self._categories[name]


DEFAULT_CORPUS = ResponseCorpus(_CATEGORIES)


def file_acknowledgment(file_names: Sequence[str]) -> str:
    return (
        f"I can see you've uploaded: **{', '.join(file_names)}**\n\n"
        "In a real implementation, I would analyze these files. For this demo, I'm just acknowledging them!"
    )


def _mentions(text: str, keywords: Sequence[str]) -> bool:
    return any(k in text for k in keywords)


class ResponseSelector:
    """Pick a reply for a request from keyword classes checked in priority order."""

    def __init__(self, corpus: ResponseCorpus = DEFAULT_CORPUS, rng: Optional[random.Random] = None):
        self.corpus = corpus
        self.rng = rng or random.Random()

    def last_user_text(self, request: ChatRequest) -> str:
        if not request.messages:
            return DEFAULT_USER_TEXT
        return request.messages[-1].content

    def select(self, request: ChatRequest) -> str:
        text = self.last_user_text(request).lower()

        if _mentions(text, FILE_KEYWORDS) and request.attachments:
            return file_acknowledgment([a.file_name for a in request.attachments])
        if _mentions(text, CODE_KEYWORDS):
            return self.rng.choice(self.corpus[CODE])
        if _mentions(text, TECHNICAL_KEYWORDS):
            return self.rng.choice(self.corpus[TECHNICAL])
        if "how" in text and ("work" in text or "integrate" in text):
            return self.corpus.integration_text
        if _mentions(text, MARKDOWN_KEYWORDS):
            return self.corpus.markdown_text
        return self.rng.choice(self.corpus[GENERAL])
