# sample/shop/app.py
"""
Run from this directory:

    VANTAGE_ENV=test python app.py
    vantage inspect --environment test
"""
from __future__ import annotations

import logging
from types import SimpleNamespace

from vantage import Playground, use_context

logging.basicConfig(level=logging.INFO)


class Request(SimpleNamespace):
    pass


def handle(playground: Playground, request: Request) -> str:
    if playground.request_filter(request):
        return "bot: default page"

    with use_context(request):
        button = playground.experiment("checkout_button").choose()
        threshold = playground.experiment("free_shipping").choose()
        playground.metric("cart_adds").track()
    return f"button={button} free shipping above {threshold}"


def main() -> None:
    playground = Playground(environment="test")
    visitors = [
        Request(vantage_identity=f"visitor-{n}", environ={"HTTP_USER_AGENT": "Mozilla/5.0"})
        for n in range(5)
    ]
    visitors.append(Request(vantage_identity="crawler", environ={"HTTP_USER_AGENT": "Bot/1.0 (+http://bot.example)"}))

    for request in visitors:
        print(request.vantage_identity, handle(playground, request))

    playground.metric("purchases").track(identity="visitor-1")
    for experiment, alternative in playground.participant_info("visitor-1"):
        print(f"visitor-1 sees {alternative} in {experiment.name}")
    for row in playground.experiment("checkout_button").counts():
        print(row)


if __name__ == "__main__":
    main()
