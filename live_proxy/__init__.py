"""
Gemini Live Proxy

WebSocket relay between a browser voice/text assistant and the Gemini API on
Vertex AI. Each browser connection gets one upstream session in one of four
modes: voice, text, stt (speech-to-text) or playground.
"""

__version__ = "1.0.0"
