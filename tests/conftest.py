"""Shared test fixtures for ghostcell tests."""

from __future__ import annotations

from collections.abc import Callable
from itertools import count

from ghostcell.completion.client import Notice
from ghostcell.config import GhostcellConfig, ModerationConfig, ProxyConfig, RateLimitConfig
from ghostcell.page.dom import HtmlDocument, Rect
from ghostcell.page.jupyter import line_content

COLAB_URL = "https://colab.research.google.com/drive/1aBcD"
JUPYTER_URL = "http://localhost:8888/notebooks/Untitled.ipynb"

# Cell 0 renders its lines out of document order, cell 1 is markdown, cell 2
# is off-screen (virtualized) and cell 3 holds the focused editor.
COLAB_SNAPSHOT = """\
<html><body>
<div class="notebook-cell-list">
  <div class="cell code" id="cell-a">
    <div class="lazy-editor">
      <div class="monaco">
        <div class="monaco-editor">
          <textarea class="inputarea"></textarea>
          <div class="view-lines">
            <div class="view-line" style="top:19px;height:19px;"><span><span class="mtk1">x&nbsp;=&nbsp;</span><span class="mtk6">1</span></span></div>
            <div class="view-line" style="top:0px;height:19px;"><span><span class="mtk8">#&nbsp;Define&nbsp;x.</span></span></div>
          </div>
        </div>
      </div>
    </div>
  </div>
  <div class="cell text" id="cell-b">
    <div class="markdown"><h1>Notes</h1><p>Some prose.</p></div>
  </div>
  <div class="cell code" id="cell-c">
    <div class="lazy-editor">
      <pre class="lazy-virtualized"><pre class="monaco-colorized"><span><span class="mtk15">import</span>&nbsp;numpy&nbsp;<span class="mtk15">as</span>&nbsp;np</span><br><span>np.zeros(3)</span></pre></pre>
    </div>
  </div>
  <div class="cell code focused" id="cell-d">
    <div class="lazy-editor">
      <div class="monaco">
        <div class="monaco-editor focused">
          <textarea class="inputarea"></textarea>
          <div class="view-lines">
            <div class="view-line" style="top:0px;"><span><span class="mtk8">#&nbsp;Define&nbsp;y.</span></span></div>
            <div class="view-line" style="top:19px;"><span><span class="mtk1">y&nbsp;=&nbsp;2</span></span></div>
          </div>
        </div>
      </div>
    </div>
  </div>
</div>
</body></html>
"""

COLAB_TEXTS = ["# Define x.\nx = 1", "", "import numpy as np\nnp.zeros(3)", "# Define y.\ny = 2"]

# Cell 0 is rendered markdown, cell 1 is a blank code cell and cell 2 is
# the focused code cell.
JUPYTER_SNAPSHOT = """\
<html><body class="notebook_app">
<div id="ipython-main-app">
  <div id="notebook-container" class="container">
    <div class="cell text_cell rendered unselected">
      <div class="inner_cell"><div class="text_cell_render rendered_html"><h1>Analysis</h1></div></div>
    </div>
    <div class="cell code_cell rendered unselected">
      <div class="input"><div class="inner_cell"><div class="input_area">
        <div class="CodeMirror cm-s-ipython">
          <div style="overflow: hidden; position: relative;"><textarea autocorrect="off" tabindex="0"></textarea></div>
          <div class="CodeMirror-lines" role="presentation"><div class="CodeMirror-code" role="presentation"><pre class=" CodeMirror-line " role="presentation"><span role="presentation" style="padding-right: 0.1px;"><span cm-text="">&#8203;</span></span></pre></div></div>
        </div>
      </div></div></div>
    </div>
    <div class="cell code_cell rendered selected">
      <div class="input"><div class="inner_cell"><div class="input_area">
        <div class="CodeMirror cm-s-ipython CodeMirror-focused">
          <div style="overflow: hidden; position: relative;"><textarea autocorrect="off" tabindex="0"></textarea></div>
          <div class="CodeMirror-lines" role="presentation"><div class="CodeMirror-code" role="presentation"><pre class=" CodeMirror-line " role="presentation"><span role="presentation" style="padding-right: 0.1px;"><span class="cm-keyword">import</span> numpy <span class="cm-keyword">as</span></span></pre></div></div>
        </div>
      </div></div></div>
    </div>
  </div>
</div>
</body></html>
"""

JUPYTER_MULTILINE_SNAPSHOT = """\
<html><body>
<div id="ipython-main-app">
  <div class="cell code_cell selected">
    <div class="CodeMirror cm-s-ipython CodeMirror-focused">
      <div><textarea></textarea></div>
      <div class="CodeMirror-code"><pre class=" CodeMirror-line " role="presentation"><span role="presentation"><span class="cm-keyword">import</span> numpy <span class="cm-keyword">as</span> np</span></pre><pre class=" CodeMirror-line " role="presentation"><span role="presentation">np.zer</span></pre></div>
    </div>
  </div>
</div>
</body></html>
"""

# Measured in a browser on JUPYTER_SNAPSHOT with the caret after "import numpy as".
CARET_RECT = Rect(left=476.78125, top=243.109375, width=1.3984375, height=17)
LINE_RECT = Rect(left=346.7421875, top=243.109375, width=1001.2578125, height=17)
LINE_TEXT_RECT = Rect(left=350.7421875, top=243.609375, width=126.1328125, height=16)

LINE_HEIGHT = 17.0
CHAR_WIDTH = LINE_TEXT_RECT.width / len("import numpy as")


def measure_jupyter(document: HtmlDocument, caret: Rect = CARET_RECT) -> None:
    """Lay out the focused cell of a Jupyter snapshot: one line per row, monospaced text."""
    focused = document.query("div.CodeMirror.CodeMirror-focused")
    assert focused is not None
    textarea = document.query("textarea", focused)
    assert textarea is not None and textarea.parent is not None
    document.set_rect(textarea.parent, caret)

    for i, line in enumerate(document.query_all("pre.CodeMirror-line", focused)):
        top = LINE_RECT.top + i * LINE_HEIGHT
        document.set_rect(line, LINE_RECT.model_copy(update={"top": top}))
        text = document.query("span[role=presentation]", line)
        assert text is not None
        width = CHAR_WIDTH * len(line_content(line))
        document.set_rect(text, LINE_TEXT_RECT.model_copy(update={"top": top + 0.5, "width": width}))


def colab_document(html: str = COLAB_SNAPSHOT, caret: int | None = None) -> HtmlDocument:
    document = HtmlDocument(html, url=COLAB_URL)
    if caret is not None:
        cell = document.query_all("div.cell")[3]
        textarea = document.query("textarea.inputarea", cell)
        assert textarea is not None
        document.set_selection(textarea, caret)
    return document


def make_proxy_config(quota: int = 60, moderation_url: str = "") -> GhostcellConfig:
    return GhostcellConfig(
        proxy=ProxyConfig(
            tokens={"tok-alice": "alice", "tok-bob": "bob"},
            rate_limit=RateLimitConfig(quota=quota, window_seconds=60.0),
            moderation=ModerationConfig(url=moderation_url),
        )
    )


def ticking_clock(start: int = 1) -> Callable[[], float]:
    """A clock that advances by one on every read."""
    ticks = count(start)
    return lambda: float(next(ticks))


class RecordingNotifier:
    """Notifier that keeps every notice it receives."""

    def __init__(self) -> None:
        self.notices: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)
