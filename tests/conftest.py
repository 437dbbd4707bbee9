import json
import pytest
import sys
import os

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logger as _logger_mod

_logger_mod.setup_logger("test-run")

from mapper import TranslationMapper
from store import DocumentStore



SAMPLE_BUILD_HTML = """
<html><body>
<div class="champion-header">
  <h1>Kai'Sa</h1>
  <strong>Bậc 1</strong>
  <ul>
    <li><em>Tỉ lệ thắng</em><b>51.24%</b></li>
    <li><em>Tỷ lệ chọn</em><b>14.8% (1,204)</b></li>
    <li><em>Tỷ lệ cấm</em><b>6.1%</b></li>
  </ul>
</div>
<div class="runes">
  <span class="text-gray-500">Chuẩn Xác</span>
  <span class="text-gray-500">Pháp Thuật</span>
  <div class="overflow-hidden">
    <img class="opacity-100" alt="Chuẩn Xác">
    <img class="opacity-100" alt="Đôi Chân Nhanh">
    <img class="opacity-100" alt="Chiến Thắng">
    <img class="opacity-100" alt="Huyền Thoại: Tốc Độ Đánh">
    <img class="opacity-100 grayscale" alt="Đòn Cuối">
    <img class="opacity-100" alt="Cắt Hạ">
    <img class="opacity-100" alt="Thiêu Đốt">
    <img class="opacity-100" alt="Tụ Tập Bão Tố">
  </div>
  <span><img class="border-yellow" alt="Tốc Độ Đánh"></span>
  <span><img class="border-yellow" alt="Sức Mạnh Thích Ứng"></span>
  <span><img class="border-yellow" alt="Máu Tăng Tiến"></span>
</div>
<table>
  <caption>SummonerSpells</caption>
  <tbody>
    <tr><td><img alt="Tốc Biến"><img alt="Thanh Tẩy"></td></tr>
    <tr><td><img alt="Tốc Biến"><img alt="Hồi Máu"></td></tr>
  </tbody>
</table>
<table>
  <thead><tr><th>Trang bị khởi đầu</th></tr></thead>
  <tbody>
    <tr>
      <td><img alt="Kiếm Doran"><img alt="Bình Máu"></td>
      <td><strong>62.1%</strong></td>
      <td><strong>51.0%</strong></td>
    </tr>
  </tbody>
</table>
<table>
  <thead><tr><th>Trang bị cốt lõi</th></tr></thead>
  <tbody>
    <tr>
      <td><img alt="Kiếm Chém"><img alt="Kiếm Vô Cực"></td>
      <td><strong>20.3%</strong></td>
      <td><strong>55.2%</strong></td>
    </tr>
  </tbody>
</table>
<table>
  <thead><tr><th>Giày</th></tr></thead>
  <tbody>
    <tr>
      <td><img alt="Giày Berserker"></td>
      <td><strong>80.5%</strong></td>
      <td><strong>51.7%</strong></td>
    </tr>
  </tbody>
</table>
<div class="inline-flex flex-wrap items-center">
  <span data-tooltip-html="q"><img alt="Skill Q"></span>
  <span data-tooltip-html="e"><img alt="Skill E"></span>
  <span data-tooltip-html="w"><img alt="Skill W"></span>
</div>
<div class="skill-sequence">
  <span class="inline-flex flex-col items-center"><strong>Q</strong></span>
  <span class="inline-flex flex-col items-center"><strong>W</strong></span>
  <span class="inline-flex flex-col items-center"><strong>E</strong></span>
  <span class="inline-flex flex-col items-center"><strong>Q</strong></span>
  <span class="inline-flex flex-col items-center"><strong>Q</strong></span>
  <span class="inline-flex flex-col items-center"><strong>R</strong></span>
</div>
</body></html>
"""

SAMPLE_COUNTER_HTML = """
<html><body>
<article>
  <div class="stats">
    <span class="win-rate">50,8%</span>
    <span class="pick-rate">12.4%</span>
  </div>
  <h2>Bị khắc chế bởi</h2>
  <div class="list">
    <img alt="Draven" src="/images/champions/draven.png">
    <img alt="Caitlyn" src="/images/champions/caitlyn.png">
  </div>
  <h2>Khắc chế tốt</h2>
  <div class="list">
    <img alt="Ezreal" src="/images/champions/ezreal.png">
  </div>
  <div class="entry-content">Kai'Sa mạnh ở giai đoạn giữa trận, nên tránh giao tranh sớm với các xạ thủ có sát thương cao.</div>
</article>
</body></html>
"""

SAMPLE_ITEM_HTML = """
<html>
<head><title>Trang bị: GIÀY NĂNG LƯỢNG HOÀN CHỈNH</title></head>
<body>
<nav><a href="/">Trang chủ</a> <a href="/trang-bi/">Trang bị</a></nav>
<h1>GIÀY NĂNG LƯỢNG HOÀN CHỈNH</h1>
<div class="item-image"><img src="/wp-content/uploads/giay-nang-luong.png"></div>
<div class="content">
  <p>+300 Máu Tối Đa</p>
  <p>+45 Tốc Độ Di Chuyển</p>
  <p class="item-description">Nội Tại: Nhận thêm Tốc Độ Di Chuyển khi ra khỏi giao tranh.</p>
  <p>(Kích Hoạt): Tăng 30% Tốc Độ Di Chuyển trong 4 giây.</p>
  <span class="item-price">Giá: 1100</span>
</div>
</body></html>
"""

SAMPLE_SKILL_HTML = """
<html><body>
<div class="wf-page-header">
  <div class="wf-page-header__champion-avatar"><img src="/static/img/champions/aatrox.png"></div>
  <h1 class="wf-page-header__champion-name">Aatrox</h1>
  <div class="wf-page-header__champion-title">The Darkin Blade</div>
  <div class="wf-page-header__champion-roles"><span>Fighter</span><span>Tank</span></div>
  <div class="wf-page-header__patch">Patch 5.2</div>
</div>
<div class="wf-abilities">
  <div class="wf-ability" data-ability="passive">
    <img src="/static/img/champ-abilities/aatrox-passive.png">
    <div class="wf-ability__name">Deathbringer Stance</div>
    <div class="wf-ability__description">Aatrox's next attack deals bonus damage and heals him.</div>
  </div>
  <div class="wf-ability" data-ability="Q">
    <img src="/static/img/champ-abilities/aatrox-q.png">
    <div class="wf-ability__name">The Darkin Blade</div>
    <div class="wf-ability__description">Aatrox slams his greatsword, dealing damage.</div>
    <div class="wf-ability__cooldown">14 / 12 / 10 / 8</div>
  </div>
  <div class="wf-ability" data-ability="W">
    <div class="wf-ability__name">Infernal Chains</div>
    <div class="wf-ability__description">Aatrox smashes the ground, slowing the first enemy hit.</div>
    <div class="wf-ability__cooldown">14 / 13 / 12 / 11</div>
  </div>
  <div class="wf-ability" data-ability="E">
    <img src="/static/img/champ-abilities/aatrox-e.png">
    <div class="wf-ability__name">Umbral Dash</div>
    <div class="wf-ability__description">Aatrox dashes in the target direction.</div>
    <div class="wf-ability__cooldown">9 / 8 / 7 / 6</div>
  </div>
  <div class="wf-ability" data-ability="R">
    <img src="/static/img/champ-abilities/aatrox-r.png">
    <div class="wf-ability__name">World Ender</div>
    <div class="wf-ability__description">Aatrox unleashes his demonic form.</div>
    <div class="wf-ability__cooldown">120 / 100 / 80</div>
  </div>
</div>
</body></html>
"""

SAMPLE_TFT_HTML = """
<html><body>
<div class="character-portrait"><img class="character-image" src="https://rerollcdn.com/characters/Skin/14/Jinx.png"></div>
<ul class="stats-list">
  <li>Cost: 5</li>
  <li>Health: 900 / 1620 / 2916</li>
  <li>Mana: 0 / 60</li>
  <li>Armor: 30</li>
  <li>MR: 30</li>
  <li>DPS: 56 / 101 / 182</li>
  <li>Damage: 70 / 126 / 227</li>
  <li>Atk Spd: 0.8</li>
  <li>Crit Rate: 25%</li>
  <li>Range: 6</li>
</ul>
<div class="character-ability">
  <div class="ability-description-name"><h2>Get Excited!</h2></div>
  <div class="ability-description-cost"><span>60</span></div>
  <div class="ability-bonus">Jinx fires rockets at the 3 furthest enemies.</div>
  <div class="ability-description-name"><h2>Sniper</h2></div>
  <div class="ability-description-name"><h2>Rebel</h2></div>
</div>
<div class="items-list">
  <img alt="Rabadon's Deathcap" src="https://rerollcdn.com/items/RabadonsDeathcap.png">
  <img alt="Guinsoo's Rageblade" src="https://rerollcdn.com/items/GuinsoosRageblade.png">
  <img alt="Rabadon's Deathcap" src="https://rerollcdn.com/items/RabadonsDeathcap.png">
</div>
</body></html>
"""

SAMPLE_FEED_EN = {
    "type": "champion",
    "version": "15.10.1",
    "data": {
        "Kaisa": {
            "id": "Kaisa",
            "name": "Kai'Sa",
            "title": "Daughter of the Void",
            "tags": ["Marksman"],
            "image": {"full": "Kaisa.png"},
            "passive": {
                "name": "Second Skin",
                "description": "<b>Innate:</b> Kai'Sa's basic attacks stack Plasma.",
                "image": {"full": "Kaisa_Passive.png"},
            },
            "spells": [
                {"name": "Icathian Rain", "description": "Kai'Sa shoots a swarm of missiles.", "image": {"full": "KaisaQ.png"}},
                {"name": "Void Seeker", "description": "Kai'Sa shoots a long range missile.", "image": {"full": "KaisaW.png"}},
                {"name": "Supercharge", "description": "Kai'Sa charges up her Void energy.", "image": {"full": "KaisaE.png"}},
                {"name": "Killer Instinct", "description": "Kai'Sa dashes near an enemy champion.", "image": {"full": "KaisaR.png"}},
            ],
        }
    },
}

SAMPLE_FEED_VI = {
    "type": "champion",
    "version": "15.10.1",
    "data": {
        "Kaisa": {
            "id": "Kaisa",
            "name": "Kai'Sa",
            "title": "Ái Nữ Hư Không",
            "tags": ["Marksman"],
            "image": {"full": "Kaisa.png"},
            "passive": {
                "name": "Lớp Da Thứ Hai",
                "description": "<b>Nội tại:</b> Đòn đánh của Kai'Sa cộng dồn Plasma.",
                "image": {"full": "Kaisa_Passive.png"},
            },
            "spells": [
                {"name": "Mưa Icathia", "description": "Kai'Sa bắn ra một loạt tên lửa.", "image": {"full": "KaisaQ.png"}},
                {"name": "Tia Truy Kích", "description": "Kai'Sa bắn một tên lửa tầm xa.", "image": {"full": "KaisaW.png"}},
                {"name": "Tăng Áp", "description": "Kai'Sa tích tụ năng lượng Hư Không.", "image": {"full": "KaisaE.png"}},
                {"name": "Bản Năng Sát Thủ", "description": "Kai'Sa lướt tới gần tướng địch.", "image": {"full": "KaisaR.png"}},
            ],
        }
    },
}



class FakeResponse:

    def __init__(self, status_code: int = 200, text: str = ""):
        self.status_code = status_code
        self.text = text
        self.closed = False

    def close(self):
        self.closed = True


class FakeSession:
    """
    Stands in for requests.Session. ``routes`` maps URL -> body text,
    an int status code, or an exception instance to raise. Unknown URLs 404.
    """

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append(url)
        value = self.routes.get(url, 404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, int):
            return FakeResponse(value, "")
        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False)
        return FakeResponse(200, value)


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def timeout_error():
    return requests.Timeout("read timed out")


@pytest.fixture
def build_html():
    return SAMPLE_BUILD_HTML


@pytest.fixture
def counter_html():
    return SAMPLE_COUNTER_HTML


@pytest.fixture
def item_html():
    return SAMPLE_ITEM_HTML


@pytest.fixture
def feed_en():
    return json.loads(json.dumps(SAMPLE_FEED_EN))


@pytest.fixture
def feed_vi():
    return json.loads(json.dumps(SAMPLE_FEED_VI))


@pytest.fixture
def table():
    return {
        "Nhẫn Doran":     "Doran's Ring",
        "Kiếm Doran":     "Doran's Blade",
        "Bình Máu":       "Health Potion",
        "Ma Poro":        "Ghost Poro",
        "Chuẩn Xác":      "Precision",
        "Pháp Thuật":     "Sorcery",
        "Tốc Biến":       "Flash",
        "Giày Berserker": "Berserker's Greaves",
    }


@pytest.fixture
def mapper(table):
    return TranslationMapper(table)


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(str(tmp_path / "records.db"))
    yield s
    s.close()


@pytest.fixture
def skill_html():
    return SAMPLE_SKILL_HTML


@pytest.fixture
def tft_html():
    return SAMPLE_TFT_HTML
