# Credits: Kwark Team - 2024

from kwark import external_knowledge


def chunks(lst, n):
    """Yield successive n-sized chunks from lst."""
    for i in range(0, len(lst), n):
        yield lst[i:i + n]


def dot(a, b):
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def light_style_value(style, elapsed, rate=external_knowledge.light_style_rate):
    """Brightness of a light style string at `elapsed` seconds, 'a' = 0.0 and 'z' = 1.0"""
    if not style:
        return 0.0
    frame = int(elapsed * rate) % len(style)
    return (ord(style[frame]) - ord("a")) / (ord("z") - ord("a"))


def light_style_values(elapsed, styles=None):
    if styles is None:
        styles = external_knowledge.light_styles
    return [light_style_value(style, elapsed) for style in styles]
