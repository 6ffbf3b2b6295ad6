from pathlib import Path
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional


@dataclass(frozen=True)
class SubtitleStyle:
    """Subtitle appearance passed to libass through ``force_style``."""
    # Font settings
    font_name: str = "Arial"
    font_size: int = 10
    font_color: str = "white"  # named, #RRGGBB, or "black@0.5"
    bold: bool = False

    # Outline and shadow
    outline_color: str = "black"
    outline_width: int = 1
    shadow_offset: int = 0

    # Background box; None keeps the outline border style
    background_color: Optional[str] = None

    # Position
    alignment: Literal["bottom", "top", "center"] = "bottom"
    margin_v: int = 10

    @property
    def border_style(self) -> int:
        # 1 = outline + drop shadow, 3 = opaque box
        return 3 if self.background_color else 1

    def to_force_style(self) -> str:
        alignment_map = {
            "bottom": 2,
            "top": 8,
            "center": 5,
        }
        parts = [
            f"Fontname={self.font_name}",
            f"Fontsize={self.font_size}",
            f"PrimaryColour={html_to_ass_color(self.font_color)}",
            f"OutlineColour={html_to_ass_color(self.outline_color)}",
        ]
        if self.background_color:
            parts.append(f"BackColour={html_to_ass_color(self.background_color)}")
        parts += [
            f"BorderStyle={self.border_style}",
            f"Outline={self.outline_width}",
            f"Shadow={self.shadow_offset}",
            f"Bold={1 if self.bold else 0}",
            f"MarginV={self.margin_v}",
            f"Alignment={alignment_map.get(self.alignment, 2)}",
        ]
        return ",".join(parts)


def html_to_ass_color(color: str) -> str:
    """Convert HTML color to ASS format (&HAABBGGRR)."""
    if color.startswith("#") and len(color) == 7:
        # #RRGGBB -> &H00BBGGRR
        r, g, b = color[1:3], color[3:5], color[5:7]
        return f"&H00{b}{g}{r}".upper()
    if "@" in color:
        # "black@0.5" -> color with alpha
        color_part, alpha = color.split("@", 1)
        alpha_hex = format(int((1 - float(alpha)) * 255), "02X")
        base = _NAMED_COLOURS.get(color_part.lower(), "&H00FFFFFF")
        return f"&H{alpha_hex}{base[4:]}"
    return _NAMED_COLOURS.get(color.lower(), "&H00FFFFFF")


_NAMED_COLOURS = {
    "white": "&H00FFFFFF",
    "black": "&H00000000",
    "yellow": "&H0000FFFF",
    "red": "&H000000FF",
    "blue": "&H00FF0000",
    "green": "&H0000FF00",
}


def _quote_filter_value(value: str) -> str:
    # single-quoted filter option; a literal quote closes, escapes, reopens
    return "'" + value.replace("\\", "\\\\").replace("'", r"'\''") + "'"


def subtitles_filter(subtitle_name: str, style: SubtitleStyle) -> str:
    """Build the ``-vf`` value. ``subtitle_name`` should be a short relative name."""
    return f"subtitles={_quote_filter_value(subtitle_name)}:force_style={_quote_filter_value(style.to_force_style())}"


def build_burn_cmd(
    ffmpeg_bin: str,
    video_path: Path | str,
    subtitle_name: str,
    output_path: Path | str,
    style: SubtitleStyle,
) -> List[str]:
    return [
        ffmpeg_bin, "-y",
        "-i", str(video_path),
        "-vf", subtitles_filter(subtitle_name, style),
        str(output_path),
    ]


STYLE_PRESETS: Dict[str, SubtitleStyle] = {
    "default": SubtitleStyle(),
    "bold": SubtitleStyle(
        font_size=14,
        bold=True,
        outline_width=2,
        font_color="yellow",
    ),
    "netflix": SubtitleStyle(
        font_size=12,
        background_color="black@0.7",
        outline_width=0,
        margin_v=20,
    ),
}
DEFAULT_STYLE = "default"


def resolve_style(name: Optional[str]) -> SubtitleStyle:
    key = (name or "").strip().lower()
    return STYLE_PRESETS.get(key, STYLE_PRESETS[DEFAULT_STYLE])
