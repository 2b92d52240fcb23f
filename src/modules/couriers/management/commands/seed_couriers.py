"""Generate a courier roster scattered around the store."""

from __future__ import annotations

import random
import string

from django.conf import settings
from django.core.management.base import BaseCommand

from modules.couriers.models import CourierProfile

FIRST_NAMES = [
    "Carlos", "João", "Pedro", "Lucas", "Mateus", "Rafael", "Bruno",
    "Felipe", "Gustavo", "Rodrigo", "Ana", "Juliana", "Camila", "Larissa",
]
LAST_NAMES = [
    "Silva", "Santos", "Oliveira", "Souza", "Rodrigues", "Ferreira",
    "Alves", "Pereira", "Lima", "Gomes", "Costa", "Ribeiro",
]
SPREAD_DEGREES = 0.02


def random_plate(rng: random.Random) -> str:
    """Mercosul-style plate, e.g. ``ABC-1D23``."""
    letters = "".join(rng.choices(string.ascii_uppercase, k=3))
    return (
        f"{letters}-{rng.randint(0, 9)}"
        f"{rng.choice(string.ascii_uppercase)}{rng.randint(0, 9)}{rng.randint(0, 9)}"
    )


class Command(BaseCommand):
    help = "Create random couriers around the configured store."

    def add_arguments(self, parser):
        parser.add_argument("--count", type=int, default=8)
        parser.add_argument("--seed", type=int, default=None)

    def handle(self, *args, **options):
        rng = random.Random(options["seed"])
        created = 0
        for _ in range(options["count"]):
            CourierProfile.objects.create(
                name=f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
                vehicle_plate=random_plate(rng),
                phone=f"(11) 9{rng.randint(1000, 9999)}-{rng.randint(1000, 9999)}",
                lat=settings.DISPATCH_STORE_LAT + (rng.random() - 0.5) * SPREAD_DEGREES,
                lng=settings.DISPATCH_STORE_LNG + (rng.random() - 0.5) * SPREAD_DEGREES,
            )
            created += 1
        self.stdout.write(self.style.SUCCESS(f"Seed completed: couriers={created}"))
