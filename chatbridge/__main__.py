"""
Chatbridge - multi-provider AI chat client

Talks to OpenAI, Anthropic, Google AI, Mistral, Groq, Together AI and
OpenAI-compatible custom endpoints through one normalized interface.

Quick Start:
    pip install -e .
    chatbridge configure openai --api-key sk-... --activate
    chatbridge chat "hello"
"""

from chatbridge.cli.cli import main

if __name__ == "__main__":
    main()
