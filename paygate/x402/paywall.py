# paygate/x402/paywall.py
"""HTML paywall served to browsers instead of the JSON 402 body."""
import html
import json
from dataclasses import dataclass

from fastapi import Request

from paygate.x402.models import PaymentRequiredResponse


@dataclass
class PaywallConfig:
    app_name: str = "My App"
    testnet: bool = False


def is_browser_request(request: Request) -> bool:
    """A browser asks for HTML and identifies itself as Mozilla-compatible."""
    accept = request.headers.get("Accept", "")
    user_agent = request.headers.get("User-Agent", "")
    return "text/html" in accept and "Mozilla" in user_agent


def render_paywall(payment_required: PaymentRequiredResponse, config: PaywallConfig) -> str:
    """Render the paywall page. The full 402 document is embedded for wallet scripts."""
    options = "\n".join(
        f"<li>{html.escape(r.price or r.amount)} on <code>{html.escape(r.network)}</code> "
        f"to <code>{html.escape(r.pay_to)}</code></li>"
        for r in payment_required.accepts
    )
    description = ""
    if payment_required.resource and payment_required.resource.description:
        description = f"<p>{html.escape(payment_required.resource.description)}</p>"
    network_label = "Testnet" if config.testnet else "Mainnet"
    # "</" would end the script element early
    embedded = json.dumps(payment_required.to_wire()).replace("</", "<\\/")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Payment Required - {html.escape(config.app_name)}</title>
</head>
<body>
<h1>{html.escape(config.app_name)}</h1>
<h2>Payment required</h2>
{description}
<p>Network: {network_label}</p>
<ul>
{options}
</ul>
<script type="application/json" id="x402-payment-required">{embedded}</script>
</body>
</html>
"""
