from mediaingest.services.files import Files, decode_inline_payload

__all__ = ["Files", "decode_inline_payload"]
