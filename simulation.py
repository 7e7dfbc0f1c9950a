#!/usr/bin/env python3
"""Sticker Exchange — End-to-End Simulation.

Runs three participants (Alice, Bob, Carol) against one in-memory network
with a locally generated issuer key:

    Scenario 1: Directed Exchange
        - Alice offers her sticker to Bob
        - Bob discovers the offer and accepts it with his own sticker
        - Alice resolves her pending offer -> COMPLETED, both hold both

    Scenario 2: Easy Exchange
        - Bob posts an anonymous offer
        - Alice searches the registry, matches Bob's offer and accepts it
        - Bob resolves through the backlink index -> COMPLETED
        - Carol searches afterwards and finds nothing

    Scenario 3: Declined Offer
        - Carol offers her sticker to Alice
        - Alice rejects it
        - Carol resolves her pending offer -> REJECTED, nothing changes hands

Usage:
    uv run python simulation.py
    uv run python simulation.py --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import random
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from sticker_exchange.logging_config import get_logger, party_context, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from sticker_exchange.config import Settings  # noqa: E402
from sticker_exchange.domain.enums import Collection  # noqa: E402
from sticker_exchange.infrastructure.memory import (  # noqa: E402
    InMemoryBacklinkIndex,
    InMemoryRepositoryStorage,
    StaticDirectory,
    StaticProfiles,
)
from sticker_exchange.runtime import ExchangeRuntime, build_runtime  # noqa: E402
from sticker_exchange.seals.authority import LocalSigningAuthority  # noqa: E402
from sticker_exchange.seals.keys import generate_keypair  # noqa: E402

HUB_HANDLE = "hub.stickers.sim"
HUB = "did:plc:simhub4k2n7q5w7r3t6y3x"
PARTICIPANTS = {
    "did:plc:simalice3m7q2v6k5x7n4w": ("alice.sim", "Alice"),
    "did:plc:simbob6t2w7r4y5m3k7q5z": ("bob.sim", "Bob"),
    "did:plc:simcarol7n5x3q7v2k6w4m": ("carol.sim", "Carol"),
}


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


@dataclass
class Network:
    """One shared in-memory network plus a runtime per participant."""

    storage: InMemoryRepositoryStorage
    alice: ExchangeRuntime
    bob: ExchangeRuntime
    carol: ExchangeRuntime

    def name(self, did: str) -> str:
        return PARTICIPANTS.get(did, (did, did))[1]


def build_network(seed: int) -> Network:
    """Fresh repositories, a fresh issuer key, and three runtimes trusting it."""
    keypair = generate_keypair()
    settings = Settings(
        _env_file=None,
        trusted_issuers=keypair.did(),
        hub_handle=HUB_HANDLE,
        cdn_image_template="https://cdn.sim/img/{did}/{cid}@jpeg",
    )
    storage = InMemoryRepositoryStorage()
    backlinks = InMemoryBacklinkIndex(storage)
    directory = StaticDirectory(handles={HUB_HANDLE: HUB})
    profiles = StaticProfiles()
    for did, (handle, display_name) in PARTICIPANTS.items():
        profiles.add(did, handle, display_name, f"https://cdn.sim/avatar/{did}.jpg")

    authority = LocalSigningAuthority(keypair=keypair)
    rng = random.Random(seed)
    runtimes = [
        build_runtime(
            did,
            storage=storage,
            backlinks=backlinks,
            directory=directory,
            profiles=profiles,
            authority=authority,
            settings=settings,
            rng=rng,
        )
        for did in PARTICIPANTS
    ]
    logger.info("simulation.network_ready", issuer=keypair.did(), participants=len(runtimes))
    return Network(storage, *runtimes)


async def onboard(network: Network) -> None:
    """Every participant mints a self sticker and joins the registry."""
    for runtime in (network.alice, network.bob, network.carol):
        with party_context(runtime.did):
            await runtime.collection.init_stickers(
                on_status=lambda msg, who=network.name(runtime.did): print(f"  [{who}] {msg}")
            )


async def own_items(runtime: ExchangeRuntime) -> list:
    return await runtime.collection.get_user_stickers(runtime.did)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------


def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_collections(network: Network) -> None:
    """Print which stickers every participant currently holds."""
    print("\n  🗂️  Collections:")
    for runtime in (network.alice, network.bob, network.carol):
        items = await own_items(runtime)
        names = sorted(network.name(item.sticker.subject_did) for item in items)
        print(f"    {network.name(runtime.did):<6} {', '.join(names) or '(empty)'}")
    print()


def print_transactions(network: Network, did: str) -> None:
    """Print the transaction log of one participant."""
    print(f"\n  📜 Transactions of {network.name(did)}:")
    values = network.storage.values(did, Collection.TRANSACTION)
    for i, value in enumerate(values, 1):
        partner = value.get("partner")
        who = network.name(partner) if partner else "anyone"
        print(f"    {i}. [{value.get('status')}] with {who}")
    print()


# ===========================================================================
# Scenario 1: Directed Exchange
# ===========================================================================
async def scenario_1_directed(seed: int) -> None:
    """Alice offers to Bob, Bob accepts from his incoming offers."""
    banner("SCENARIO 1: Directed Exchange — Alice ⇄ Bob")
    network = build_network(seed)
    alice, bob = network.alice, network.bob

    section("Onboarding")
    await onboard(network)

    section("Alice offers her sticker to Bob")
    with party_context(alice.did):
        offer_ref = await alice.exchange.create_offer(
            [item.uri for item in await own_items(alice)],
            partner=bob.did,
            message="Swap?",
        )
        logger.info("🔵 ALICE: Offer created", offer_uri=offer_ref.uri)

    section("Bob checks his incoming offers")
    with party_context(bob.did):
        incoming = await bob.discovery.get_incoming_offers()
        for offer in incoming:
            print(f"  📨 From {network.name(offer.partner)}: {len(offer.items)} item(s)")

        section("Bob accepts")
        result = await bob.exchange.accept_offer(
            incoming[0].partner,
            [item.uri for item in await own_items(bob)],
            message="Deal!",
            offer_ref=incoming[0].offer_ref,
        )
        logger.info(
            "🟢 BOB: Offer accepted",
            transaction_uri=result.transaction_ref.uri,
            received=[str(outcome) for outcome in result.received],
        )

    section("Alice resolves her pending offers")
    with party_context(alice.did):
        for resolution in await alice.exchange.resolve_pending(
            on_status=lambda msg: print(f"  [Alice] {msg}")
        ):
            print(f"  ✅ {resolution.offer_ref.rkey}: {resolution.outcome}")

    await print_collections(network)
    print_transactions(network, alice.did)


# ===========================================================================
# Scenario 2: Easy Exchange
# ===========================================================================
async def scenario_2_easy(seed: int) -> None:
    """Bob posts an anonymous offer; Alice finds it through the registry."""
    banner("SCENARIO 2: Easy Exchange — anonymous offer matched via registry")
    network = build_network(seed)
    alice, bob, carol = network.alice, network.bob, network.carol

    section("Onboarding")
    await onboard(network)

    section("Bob posts an anonymous offer")
    with party_context(bob.did):
        offer_ref = await bob.exchange.create_offer(
            [item.uri for item in await own_items(bob)], anonymous=True
        )
        logger.info("🔵 BOB: Anonymous offer created", offer_uri=offer_ref.uri)

    section("Alice searches for a partner")
    with party_context(alice.did):
        mine = await own_items(alice)
        match = await alice.matcher.find_partner([item.sticker for item in mine])
        if match is None:
            print("  ❌ No partner found")
            return
        kind = "perfect" if match.is_perfect else "fallback"
        print(f"  🎯 Matched {network.name(match.did)} ({kind})")

        await alice.exchange.accept_offer(
            match.did, [item.uri for item in mine], offer_ref=match.offer_ref
        )
        logger.info("🟢 ALICE: Anonymous offer accepted", offer_uri=match.offer_ref.uri)

    section("Bob resolves through the backlink index")
    with party_context(bob.did):
        for resolution in await bob.exchange.resolve_pending(
            on_status=lambda msg: print(f"  [Bob] {msg}")
        ):
            partner = network.name(resolution.partner) if resolution.partner else "nobody"
            print(f"  ✅ {resolution.offer_ref.rkey}: {resolution.outcome} with {partner}")

    section("Carol searches afterwards")
    with party_context(carol.did):
        items = await own_items(carol)
        found = await carol.matcher.find_partner([item.sticker for item in items])
    print(f"  {'🎯 ' + network.name(found.did) if found else '🚫 Nothing open'}")

    await print_collections(network)
    print_transactions(network, bob.did)


# ===========================================================================
# Scenario 3: Declined Offer
# ===========================================================================
async def scenario_3_declined(seed: int) -> None:
    """Carol offers to Alice, Alice declines."""
    banner("SCENARIO 3: Declined Offer — Carol → Alice")
    network = build_network(seed)
    alice, carol = network.alice, network.carol

    section("Onboarding")
    await onboard(network)

    section("Carol offers her sticker to Alice")
    with party_context(carol.did):
        await carol.exchange.create_offer(
            [item.uri for item in await own_items(carol)], partner=alice.did
        )

    section("Alice declines")
    with party_context(alice.did):
        [incoming] = await alice.discovery.get_incoming_offers()
        await alice.exchange.reject_offer(
            incoming.partner, offer_ref=incoming.offer_ref, message="No thanks"
        )
        logger.info("🟢 ALICE: Offer rejected", offer_uri=incoming.offer_ref.uri)

    section("Carol resolves her pending offers")
    with party_context(carol.did):
        for resolution in await carol.exchange.resolve_pending(
            on_status=lambda msg: print(f"  [Carol] {msg}")
        ):
            print(f"  ❌ {resolution.offer_ref.rkey}: {resolution.outcome}")

    await print_collections(network)
    print_transactions(network, carol.did)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_directed,
    2: scenario_2_easy,
    3: scenario_3_declined,
}


async def run_all(seed: int) -> None:
    """Run all scenarios sequentially."""
    print("\n" + "🚀" * 35)
    print("  STICKER EXCHANGE — SIMULATION")
    print("  Network: in-memory repositories, local issuer key")
    print(f"  Seed: {seed}")
    print("🚀" * 35 + "\n")

    for scenario in SCENARIOS.values():
        await scenario(seed)

    print("\n" + "=" * 70)
    print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


async def run_scenario(num: int, seed: int) -> None:
    """Run a specific scenario."""
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
        return
    await SCENARIOS[num](seed)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sticker Exchange Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Seed for the matcher's candidate shuffle.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(args.seed))
    else:
        asyncio.run(run_scenario(args.scenario, args.seed))
