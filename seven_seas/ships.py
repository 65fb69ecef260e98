# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
The Seven Seas fleet: collection, ships and fungible token descriptors.

Everything here is plain data. Ship names and descriptions are random; pass
seeded ``random.Random`` and ``Faker`` instances for a reproducible fleet.
"""

from __future__ import annotations

import random
import unittest
from typing import List, Optional

from faker import Faker

from .nft_client import JsonMetadata, TokenConfig
from .storage import gateway_uri

SHIP_COUNT = 32
SHIP_SYMBOL = "SHIP"
# 5.00%
SHIP_SELLER_FEE_BASIS_POINTS = 500

COLLECTION_NAME = "Seven Seas"
COLLECTION_SYMBOL = "7SEAS"
# 1.00%
COLLECTION_SELLER_FEE_BASIS_POINTS = 100
COLLECTION_IMAGE = (
    "https://bafkreidf4cwzo36gm3stc2jlhzqaai44ufdtinpityei7gxgunowyv6ygu"
    ".ipfs.nftstorage.link/"
)

ADJECTIVES = [
    "Fearless",
    "Dreadful",
    "Savage",
    "Fierce",
    "Ruthless",
    "Notorious",
    "Infamous",
    "Brave",
    "Cunning",
    "Bold",
]

NOUNS = [
    "Seadog",
    "Corsair",
    "Scallywag",
    "Buccaneer",
    "Swashbuckler",
    "Privateer",
    "Marauder",
    "Scourge",
    "Cutlass",
    "Jolly Roger",
]

SHIP_IMAGE_CIDS = [
    "bafkreibtqt4mp4saddqsla7tjgnu6gvrkwrzxpu7mltkkwzjhhx6tyf7na",
    "bafkreido37di7kcynpjvcanujz4tgpbryvptv4gn3zhd3gtdihrgppswyi",
    "bafkreihbpnlicraewdc32qnpvgsj725da2b7qcqcy5rikcj2dgr6v5cxxy",
    "bafkreih2i5iqyz4zb6qjzmbf2dmu3lc6h6mnqedhqsyo5fovouwhjqiwka",
    "bafkreibfznm4xiu2yfchuf6budwnlwg7zkw36vt67eupjswmdxbfaxiwtm",
    "bafkreid74afcywoo2be5u63xu3ptveg3ge7pcrzaax4xwiznqdtoogk7ie",
    "bafkreievs5qe52kk2mqmsu65kznx7n6ivobrnqrz6uch7obt277t3b4zvu",
    "bafkreigdfqwuddqhggcbb3vq4mkanji24by234ydsk2jpc6qt4q4ek33ue",
    "bafkreierusunr54m56wb2ph3q6agnb5a73syk2javxkpsuheqedyduqupi",
    "bafkreihhbnshnnpwvw2cajiujnftewc3boi26p2lc6lpekgtufce6ruevq",
    "bafkreifklhhzudssq7hmiuimisei7lcux7bw37glvmkovhknmcf2cn4inm",
    "bafkreifdsucn63v5l3v4dyzdz4ib5k4dmsp4rzm64ierp7jbcavhvknfru",
    "bafkreidpuebkbeioom3xxsmrddhhlqrmcebbyxajav3sbnkkd4ak255wwi",
    "bafkreifkmgriy2anmum5af2ifkcg6pj6ce5eh3g7j4qk2j2llmjex5wwoq",
    "bafkreie4lfx4co2bw3szua3qht3t6f3ytcjmxokzkvrpa7ks32w7s46lyy",
    "bafkreiaquqs2tdonmeyt4gj6p4vliebzwu4set6qnyeyya7mebg3qasnri",
    "bafkreicf7pahjfldvpfh3zs2nxmmeg4ffqq7q5vnkfpm46wa3wgnyo7rie",
    "bafkreihfdejyxxifa6qqvsifk7naa6fycru3ndtri4nakj5hka2qvkqhim",
    "bafkreigkgge56j5chhuzwggczwcj75pi6jwkf62mivvjwgptdbbsnscxuq",
    "bafkreiedrwuogtjnxawcxsxz3c5z3h2swrmxe7te7ncmz53uipjvkf7kke",
    "bafkreifz2mjdilfcaxm2platlj4t7fsiasu2t7s6eeiof2iuymlaczm33u",
    "bafkreih3wqnmxxijzkkkbl24lv46ia4f3luyardtsvtsgrd2lcmnmweqia",
    "bafkreics4ixtau55it5dmnciukwcw3hgubfuowfhqagbdwvg3z2gknflze",
    "bafkreiahl7ufdcwnkagcd6wbirl6n42orcjf22aa5rbnyowstojsamdika",
    "bafkreigogp744lpbdnra7iaeaw3gpi6cnxo52bg4nigw4owitjlebetmau",
    "bafkreibkqz6tn6j6n4zlg5o5y6wcb3s5k5kvhpukdkbzwbhhweg6zlwz5q",
    "bafkreibnclnkx5n7kqa2iwmadaqhpls43csepnxk3bn2e3b5npop7jael4",
    "bafkreia4sdzap5a3kz6taiysdpb3nuo5umnyxm5ap7jwphqaedq6htbfg4",
    "bafkreiedqconadnozvmzjccqougxl2owwlyu5sywtaqspqtjyaxuof67aq",
    "bafkreicl4fl4ieffty3qgucx7xtjrdcg7e2f65cmipal2hpcs6bnwori74",
    "bafkreidslcs6bvqafikjuwccryvx444mheesmoxifo7nspof6syr4uzmtq",
    "bafkreicumoxi3uyhwjce5rkazmmzf2uniyy3zo7g6lmjejn3cotel55iqy",
]

PLACEHOLDER_TOKEN_URI = "https://thisisnot.arealurl/info.json"

# Gold appears twice; each entry gets its own mint.
TOKEN_CONFIGS = [
    TokenConfig(2, "Seven Seas Gold", "GOLD", PLACEHOLDER_TOKEN_URI),
    TokenConfig(2, "Seven Seas Gold", "GOLD", PLACEHOLDER_TOKEN_URI),
    TokenConfig(2, "Seven Seas Rum", "RUM", PLACEHOLDER_TOKEN_URI),
    TokenConfig(2, "Seven Seas Cannons", "CANNONS", PLACEHOLDER_TOKEN_URI),
]


def random_pirate_name(rng: Optional[random.Random] = None) -> str:
    rng = random.Random() if rng is None else rng
    return f"{rng.choice(ADJECTIVES)} {rng.choice(NOUNS)}"


def collection_metadata(fake: Optional[Faker] = None) -> JsonMetadata:
    fake = Faker() if fake is None else fake
    return JsonMetadata(
        name=COLLECTION_NAME,
        symbol=COLLECTION_SYMBOL,
        description=fake.catch_phrase(),
        image=COLLECTION_IMAGE,
    )


def ship_metadata(
    index: int, rng: Optional[random.Random] = None, fake: Optional[Faker] = None
) -> JsonMetadata:
    """Metadata of ship ``index`` (0-based); images cycle through the CID list."""
    fake = Faker() if fake is None else fake
    return JsonMetadata(
        name=random_pirate_name(rng),
        symbol=SHIP_SYMBOL,
        description=fake.catch_phrase(),
        image=gateway_uri(SHIP_IMAGE_CIDS[index % len(SHIP_IMAGE_CIDS)]),
    )


def fleet(
    count: int = SHIP_COUNT, seed: Optional[int] = None
) -> List[JsonMetadata]:
    rng = random.Random(seed)
    fake = Faker()
    if seed is not None:
        fake.seed_instance(seed)
    return [ship_metadata(index, rng, fake) for index in range(count)]


class Test(unittest.TestCase):
    def test_fleet(self):
        ships = fleet()
        self.assertEqual(len(ships), SHIP_COUNT)
        self.assertEqual(len(set(SHIP_IMAGE_CIDS)), SHIP_COUNT)
        self.assertEqual(
            [ship.image for ship in ships],
            [gateway_uri(cid) for cid in SHIP_IMAGE_CIDS],
        )
        for ship in ships:
            self.assertEqual(ship.symbol, "SHIP")
            adjective, noun = ship.name.split(" ", 1)
            self.assertIn(adjective, ADJECTIVES)
            self.assertIn(noun, NOUNS)
            self.assertTrue(ship.description)

    def test_seeded_fleet_is_reproducible(self):
        self.assertEqual(fleet(4, seed=7), fleet(4, seed=7))

    def test_images_cycle(self):
        self.assertEqual(ship_metadata(SHIP_COUNT).image, gateway_uri(SHIP_IMAGE_CIDS[0]))
        self.assertEqual(
            ship_metadata(1).image,
            f"https://{SHIP_IMAGE_CIDS[1]}.ipfs.nftstorage.link/",
        )

    def test_collection(self):
        metadata = collection_metadata()
        self.assertEqual(metadata.name, "Seven Seas")
        self.assertEqual(metadata.symbol, "7SEAS")
        self.assertTrue(metadata.image.endswith(".ipfs.nftstorage.link/"))

    def test_token_configs(self):
        self.assertEqual(
            [config.symbol for config in TOKEN_CONFIGS], ["GOLD", "GOLD", "RUM", "CANNONS"]
        )
        self.assertTrue(all(config.decimals == 2 for config in TOKEN_CONFIGS))


if __name__ == "__main__":
    unittest.main()
