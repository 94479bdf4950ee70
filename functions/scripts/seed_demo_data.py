# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Seeds demo schemes, modules and an offer template for one user.

Usage (from the functions/ directory):
    python3 -m scripts.seed_demo_data --user-id <uid>
"""

import argparse
import logging
from dataclasses import asdict

from backend.config import get_settings
from backend.dependencies import get_db_client
from backend.print_layout import DEFAULT_PARAMETERS
from backend.repository import (
    module_repository,
    scheme_repository,
    template_repository,
)
from shared.formatting import format_price, parse_price

DEMO_SCHEMES = [
    {
        "name": "Operator Boiler Kelas 1",
        "price": "Rp 4.500.000",
        "units": [
            {"code": "K3.01", "name": "Menerapkan prosedur K3 di tempat kerja"},
            {"code": "BLR.01", "name": "Mengoperasikan boiler pipa api"},
            {"code": "BLR.02", "name": "Melakukan perawatan harian boiler"},
        ],
    },
    {
        "name": "Teknisi Panel Surya",
        "price": "3.250.000",
        "units": [
            {"code": "PLTS.01", "name": "Memasang modul surya"},
            {"code": "PLTS.02", "name": "Menguji instalasi PLTS atap"},
        ],
    },
]

DEMO_MODULES = [
    {
        "title": "Pengantar K3 Listrik",
        "content": (
            "<h2>Pengantar K3 Listrik</h2>"
            "<p>Modul ini membahas bahaya listrik, alat pelindung diri, "
            "dan prosedur <b>lock out tag out</b>.</p>"
        ),
    },
    {
        "title": "Efisiensi Energi Boiler",
        "content": (
            "<h2>Efisiensi Energi Boiler</h2>"
            "<ul><li>Pengendalian udara berlebih</li>"
            "<li>Pemanfaatan kembali panas buang</li></ul>"
        ),
    },
]

DEMO_TEMPLATE_BACKGROUND = "backgrounds/{uid}/demo-kop-surat.png"


def seed(user_id: str, dry_run: bool = False) -> None:
    db = get_db_client()
    schemes = scheme_repository(db)
    modules = module_repository(db)
    templates = template_repository(db)

    for scheme in DEMO_SCHEMES:
        fields = {**scheme, "price": parse_price(scheme["price"])}
        print(f"Scheme: {fields['name']} ({format_price(fields['price'])})")
        if not dry_run:
            schemes.create(user_id, fields)

    for module in DEMO_MODULES:
        print(f"Module: {module['title']}")
        if not dry_run:
            modules.create(user_id, module)

    template = {
        "name": "Kop Surat Demo",
        "background_path": DEMO_TEMPLATE_BACKGROUND.format(uid=user_id),
        "parameters": [asdict(p) for p in DEFAULT_PARAMETERS],
    }
    print(f"Template: {template['name']}")
    if not dry_run:
        templates.create(user_id, template)

    if dry_run:
        print("Dry run: nothing was written.")
    else:
        print(f"Seeded demo data for {user_id}.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Seed demo data for the offer generator."
    )
    parser.add_argument("--user-id", required=True, help="Owner uid for the data.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print what would be created without writing anything.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=get_settings().log_level.upper())
    seed(args.user_id, dry_run=args.dry_run)
