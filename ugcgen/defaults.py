"""
Process-wide defaults for script and video generation.

Any account field left empty falls back to these values. Model defaults
can be overridden from the environment; the rule texts are fixed.
"""

import os

DEFAULT_OPENAI_MODEL = os.environ.get("DEFAULT_OPENAI_MODEL", "gpt-4o-mini")
DEFAULT_SORA2_MODEL = os.environ.get("DEFAULT_SORA2_MODEL", "sora-2-image-to-video")

DEFAULT_VIDEO_PROMPT_RULE = (
    "Cinematic lighting, 4k quality, highly detailed, photorealistic, natural lighting"
)

# Safe / unsafe phrasing guideline for Thai UGC review scripts.
DEFAULT_SCRIPT_RULE = """\
✅ คำพูดที่ “พูดได้” (ปลอดภัย ไม่หลอกลวง) / เน้นข้อมูลจริง ใช้คำเชิงประสบการณ์ จำลองสถานการณ์ แต่ไม่อ้างว่าใช้จริง
“นี่คือข้อมูลสำคัญของสินค้า…”
“ผลิตภัณฑ์นี้ถูกออกแบบมาเพื่อ…”
“จากข้อมูลที่แบรนด์ให้มา…”
“คุณสมบัติที่น่าสนใจคือ…”
“เรามาดูว่ามันทำอะไรได้บ้างนะคะ…”
“นี่คือวิธีใช้งานตามที่แนะนำ…”
“เหมาะสำหรับคนที่กำลังมองหา…”
“ข้อดีที่เห็นได้ชัดตามฟีเจอร์คือ…”
“ถ้าคุณต้องการผลลัพธ์แบบนี้ สินค้าตัวนี้เป็นหนึ่งในตัวเลือกที่น่าสนใจ…”
“นี่เป็นภาพจำลองเพื่อแสดงฟีเจอร์ของสินค้า…”
“AI ข้างหลังฉันช่วยแสดงภาพการใช้งานให้ดูง่ายขึ้น…”
“ขออธิบายฟังก์ชันต่าง ๆ ให้ฟังนะคะ…”
“ข้อมูลนี้อ้างอิงจากรายละเอียดสินค้านะคะ…”
“ปล. ฉันคือ AI นางแบบที่ทำหน้าที่นำเสนอข้อมูลค่ะ”
“คลิปนี้ใช้เพื่อแสดงตัวอย่างการใช้งาน ไม่ใช่ประสบการณ์จริงค่ะ”
👉 หลักคิด:
พูดได้ทุกอย่างที่ “ไม่อ้างว่าตัวเองใช้จริง” และ “ไม่เปลี่ยนสเปกของสินค้า”
==========
❌ คำพูดที่ “ไม่ควรพูด” (เข้าข่ายหลอกลวง) / ห้ามใช้เด็ดขาด เพราะเข้าข่ายโฆษณาเกินจริง หรือแสดงตัวเป็น “ผู้ใช้จริง”
“ฉันลองใช้แล้วดีมากค่ะ”
“ฉันใช้มาเดือนหนึ่งและเห็นผลจริง ๆ”
“รับรองว่าใช้แล้วได้ผลแน่นอน!”
“ใช้ปุ๊บ หน้าใสปั๊บค่ะ!”
“ดีกว่าทุกตัวที่ฉันเคยใช้แน่นอน”
“ไม่ต้องลองด้วยตัวเอง ฉันลองมาแล้วของจริง!”
“ใช้แล้วผิวขาวขึ้นทันทีเลยค่ะ”
“เครื่องนี้แรงมาก ฉันทดสอบแล้ว!”
“กล้ารับประกันว่าใช้ดีชัวร์” (โดยที่เราไม่ใช่เจ้าของแบรนด์)
“ฉันเป็นผู้ใช้จริงนะคะ” (AI ไม่ใช่ผู้ใช้จริง)
“ใช้แล้วหาย 100%”
“ผลลัพธ์เหมือนผ่านหมอแน่นอนค่ะ”
“ทุกคนต้องซื้อเลย ของดีมาก!”
“ฉันทดลองกับชีวิตประจำวันมาแล้วค่ะ”
“นี่คือรีวิวจากประสบการณ์ตรงของฉัน”
👉 หลักคิด:
ห้ามพูดทุกอย่างที่ “สร้างภาพว่ามีประสบการณ์จริง” หรือ “รับรองผลลัพธ์”
"""

# ── Video generation parameters (fixed) ─────────────────────────────────────

VIDEO_ASPECT_RATIO = "9:16"
VIDEO_DURATION_SECONDS = 5

# ── Image constraints ───────────────────────────────────────────────────────

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MiB

# ── Task states ─────────────────────────────────────────────────────────────

SUCCESS_STATES = ("success", "completed")
FAILURE_STATES = ("failed", "error")
UNKNOWN_FAILURE_REASON = "Unknown error"

# Labels shown to users for provider task states
STATE_LABELS = {
    "pending": "รอดำเนินการ",
    "processing": "กำลังประมวลผล",
    "generating": "กำลังสร้างวิดีโอ",
    "success": "สำเร็จ",
    "completed": "สำเร็จ",
    "failed": "ล้มเหลว",
    "error": "ข้อผิดพลาด",
}


def state_label(state: str) -> str:
    """Thai label for a provider task state, matched case-insensitively; unknown states pass through."""
    return STATE_LABELS.get((state or "").lower(), state)
