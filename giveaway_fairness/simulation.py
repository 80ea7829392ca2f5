"""
Giveaway Fairness Simulation

Monte Carlo audit of the ticket calculator and weighted selector. It builds a
synthetic entrant population, computes tickets once, repeats the draw many
times with a seeded generator and compares each entrant's empirical win share
with the probability the calculator assigned.

The simulation can model:
- Mixed populations of casual, active, referrer and outlier entrants
- Any fairness configuration
- Large draw counts for tight empirical estimates
"""

from __future__ import annotations

import argparse
import json
import random
import statistics
from dataclasses import dataclass, field
from pathlib import Path

from .models import Entrant, FairnessConfig, TicketResult
from .selection import select_winner
from .tickets import compute_tickets

# name -> (share of population, points range, referrals range)
STANDARD_PROFILES: dict[str, tuple[float, tuple[int, int], tuple[int, int]]] = {
    "casual": (0.5, (0, 100), (0, 1)),
    "active": (0.3, (100, 1000), (0, 5)),
    "referrer": (0.15, (50, 500), (5, 40)),
    "outlier": (0.05, (5000, 50000), (20, 200)),
}


@dataclass
class SimulationResults:
    """Results from a fairness simulation run."""

    draws: int
    entrant_count: int
    expected_share: dict[str, float]
    win_counts: dict[str, int]
    tickets: dict[str, int]
    profiles: dict[str, str]
    metrics: dict[str, float] = field(default_factory=dict)

    def empirical_share(self, user_id: str) -> float:
        if self.draws == 0:
            return 0.0
        return self.win_counts.get(user_id, 0) / self.draws


class FairnessSimulation:
    """Repeated-draw simulation over one giveaway's entrant set."""

    def __init__(self, config: FairnessConfig | None = None, seed: int | None = None):
        self.config = (config or FairnessConfig()).validate()
        self.rng = random.Random(seed)
        self.entrants: list[Entrant] = []
        self.profiles: dict[str, str] = {}
        self.results: SimulationResults | None = None

    def create_population(
        self,
        size: int,
        profiles: dict[str, tuple[float, tuple[int, int], tuple[int, int]]]
        | None = None,
    ) -> None:
        """
        Create a synthetic entrant population.

        Args:
            size: Number of entrants to create
            profiles: name -> (share, points range, referrals range); shares are
                applied in order and the remainder goes to the first profile
        """
        profiles = profiles or STANDARD_PROFILES
        self.entrants.clear()
        self.profiles.clear()

        assignments: list[str] = []
        for name, (share, _points, _referrals) in profiles.items():
            assignments.extend([name] * int(size * share))
        first = next(iter(profiles))
        assignments.extend([first] * (size - len(assignments)))

        for index, name in enumerate(assignments[:size], start=1):
            _share, (points_lo, points_hi), (refs_lo, refs_hi) = profiles[name]
            user_id = f"user-{index}"
            self.entrants.append(
                Entrant(
                    user_id=user_id,
                    points=self.rng.randint(points_lo, points_hi),
                    referrals=self.rng.randint(refs_lo, refs_hi),
                    entry_id=f"entry-{index}",
                )
            )
            self.profiles[user_id] = name

    def run(self, draws: int = 10000) -> SimulationResults:
        if not self.entrants:
            raise ValueError("No entrants created. Call create_population() first.")
        if draws <= 0:
            raise ValueError("draws must be positive")

        ticket_results = compute_tickets(self.entrants, self.config)
        win_counts = {result.user_id: 0 for result in ticket_results}
        for _ in range(draws):
            winner = select_winner(ticket_results, self.rng.random)
            win_counts[winner] += 1

        self.results = SimulationResults(
            draws=draws,
            entrant_count=len(ticket_results),
            expected_share=self._expected_share(ticket_results),
            win_counts=win_counts,
            tickets={r.user_id: r.tickets for r in ticket_results},
            profiles=dict(self.profiles),
        )
        self.results.metrics = self._calculate_metrics(self.results)
        return self.results

    @staticmethod
    def _expected_share(ticket_results: list[TicketResult]) -> dict[str, float]:
        # Draws use the floored tickets, so expectations do too.
        total = sum(r.tickets for r in ticket_results)
        return {r.user_id: r.tickets / total for r in ticket_results}

    @staticmethod
    def _calculate_metrics(results: SimulationResults) -> dict[str, float]:
        deviations = [
            abs(results.empirical_share(uid) - expected)
            for uid, expected in results.expected_share.items()
        ]
        top_user = max(results.expected_share, key=results.expected_share.get)
        never_won = sum(1 for count in results.win_counts.values() if count == 0)
        ticket_values = list(results.tickets.values())
        return {
            "max_abs_deviation": max(deviations),
            "total_variation_distance": sum(deviations) / 2,
            "top_expected_share": results.expected_share[top_user],
            "top_empirical_share": results.empirical_share(top_user),
            "never_won_percentage": never_won / results.entrant_count * 100,
            "median_tickets": float(statistics.median(ticket_values)),
            "max_tickets": float(max(ticket_values)),
        }

    def print_results_summary(self) -> None:
        if not self.results:
            print("No simulation results available. Run simulation first.")
            return

        print("\n" + "=" * 60)
        print("GIVEAWAY FAIRNESS SIMULATION RESULTS")
        print("=" * 60)
        print(f"Draws: {self.results.draws}")
        print(f"Entrants: {self.results.entrant_count}")

        print("\nFAIRNESS METRICS:")
        for metric, value in self.results.metrics.items():
            print(f"  {metric.replace('_', ' ').title()}: {value:.4f}")

        print("\nSHARE BY PROFILE:")
        by_profile: dict[str, list[str]] = {}
        for user_id, profile in self.results.profiles.items():
            by_profile.setdefault(profile, []).append(user_id)
        for profile, user_ids in sorted(by_profile.items()):
            expected = sum(self.results.expected_share[uid] for uid in user_ids)
            empirical = sum(self.results.empirical_share(uid) for uid in user_ids)
            print(
                f"  {profile}: {len(user_ids)} entrants, "
                f"expected {expected:.2%}, observed {empirical:.2%}"
            )
        print("=" * 60)

    def export_results(self, filename: str | Path) -> None:
        if not self.results:
            print("No results to export.")
            return

        export_data = {
            "fairness_config": self.config.to_dict(),
            "draws": self.results.draws,
            "entrant_count": self.results.entrant_count,
            "metrics": self.results.metrics,
            "entrants": {
                uid: {
                    "profile": self.results.profiles.get(uid),
                    "tickets": self.results.tickets[uid],
                    "expected_share": self.results.expected_share[uid],
                    "wins": self.results.win_counts[uid],
                }
                for uid in self.results.tickets
            },
        }
        with open(filename, "w", encoding="utf-8") as f:
            json.dump(export_data, f, indent=2)

        print(f"Results exported to {filename}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate repeated giveaway draws and audit win shares"
    )
    parser.add_argument(
        "--entrants", type=int, default=200, help="Number of synthetic entrants"
    )
    parser.add_argument(
        "--draws", type=int, default=20000, help="Number of draws to simulate"
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Seed for reproducible runs"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional JSON file with fairness parameters (base, P, alpha, ...)",
    )
    parser.add_argument(
        "--export", type=Path, default=None, help="Write detailed results as JSON"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    config = None
    if args.config is not None:
        config = FairnessConfig.from_dict(
            json.loads(args.config.read_text(encoding="utf-8"))
        )

    sim = FairnessSimulation(config, seed=args.seed)
    sim.create_population(args.entrants)
    sim.run(args.draws)
    sim.print_results_summary()
    if args.export is not None:
        sim.export_results(args.export)


if __name__ == "__main__":
    main()
