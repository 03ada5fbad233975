"""
Ticket Templates

Architectural Intent:
- Every filed ticket reads like a person wrote it, so consecutive incidents do
  not produce identical tickets
- The description always embeds the speed that was actually measured

Design Decisions:
- Pure functions over an injectable random.Random so tests can seed them
- Templates are in Chinese: tickets go to the provider's Chinese-language support
"""

from __future__ import annotations
import random
from typing import Optional

PURCHASED_BANDWIDTH_MBPS = 30

TITLES: tuple[str, ...] = (
    "香港轻量应用服务器带宽被限速，请帮忙检查解除",
    "我的香港轻量服务器网速异常，请协助处理下",
    "轻量应用服务器实际带宽远低于购买规格，请核实",
    "香港服务器带宽好像被限制了，麻烦帮看下",
    "轻量服务器下载速度变得很慢，请帮忙排查",
    "香港轻量服务器网络受限，请帮忙解除带宽限速",
    f"服务器带宽不达标，下载速度远低于{PURCHASED_BANDWIDTH_MBPS}Mbps",
    "我的轻量应用服务器带宽好像被限速了，请检查",
    "香港轻量服务器带宽问题咨询",
    "轻量服务器带宽异常，下载很慢请帮忙看看",
    "香港轻量应用服务器带宽严重缩水",
    "轻量服务器实际网速跟购买时差距很大",
)

GREETINGS: tuple[str, ...] = ("您好，", "你好，", "您好！\n", "")

# {speed} and {plan} are filled in by random_description
BODIES: tuple[str, ...] = (
    "我购买的香港轻量应用服务器带宽为{plan}Mbps，但目前实际带宽只有约{speed}Mbps左右。"
    "请帮忙检查服务器是否存在带宽限速情况，如果存在限速请帮忙解除，恢复到购买时承诺的{plan}Mbps带宽。",
    "我的香港轻量应用服务器最近网速很慢，刚测了一下下载速度只有{speed}Mbps，我买的是{plan}Mbps的套餐。"
    "能帮我看看是不是被限速了吗？如果是的话麻烦帮忙解除一下。",
    "我有一台香港的轻量应用服务器，配置的带宽是{plan}Mbps，但我刚测试了下载速度只有大概{speed}Mbps，感觉被限速了。"
    "请帮忙检查一下，如果确实有限速的话帮忙解除。",
    "我在用香港轻量应用服务器，带宽套餐是{plan}Mbps的，但是实测下载只有{speed}Mbps，速度明显不对。"
    "麻烦帮忙查一下是不是有限速，帮忙处理一下。",
    "我的香港轻量服务器{plan}Mbps带宽，现在实际下载速度只有{speed}Mbps，跟购买时承诺的差太多了。"
    "请帮忙看看是怎么回事，是否可以恢复正常带宽。",
    "我发现我的香港轻量应用服务器带宽有问题。购买的是{plan}Mbps，但测速只有{speed}Mbps。"
    "请问是被限速了吗？能否帮忙检查处理一下？",
    "我购买了香港区域的轻量应用服务器，标注带宽{plan}Mbps。但是今天测试发现下载速度只有{speed}Mbps，"
    "严重低于标称值。请帮我检查一下是否存在限速，如有限速请帮忙恢复。",
    "香港轻量应用服务器的带宽应该是{plan}Mbps，但我实际测试下来只有{speed}Mbps。"
    "请问这个是什么情况？能帮忙看看吗？",
)

ENDINGS: tuple[str, ...] = (
    "谢谢！",
    "感谢！",
    "谢谢",
    "麻烦了，谢谢！",
    "辛苦了，谢谢！",
    "感谢帮忙！",
    "谢谢，期待回复。",
    "",
)


def random_title(rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    return rng.choice(TITLES)


def format_speed(speed_mbps: float, rng: Optional[random.Random] = None) -> str:
    """Render the speed either rounded to an integer or with one decimal."""
    rng = rng or random.Random()
    if rng.random() < 0.5:
        return str(round(speed_mbps))
    return f"{speed_mbps:.1f}"


def random_description(speed_mbps: float, rng: Optional[random.Random] = None) -> str:
    """Build a ticket description around the measured speed."""
    rng = rng or random.Random()
    speed = format_speed(speed_mbps, rng)
    greeting = rng.choice(GREETINGS)
    body = rng.choice(BODIES).format(speed=speed, plan=PURCHASED_BANDWIDTH_MBPS)
    ending = rng.choice(ENDINGS)
    return f"{greeting}{body}{ending}"
