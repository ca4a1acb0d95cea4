"""Twitter/X live search.

Needs a logged-in browser context to return anything useful; without one
the page renders no tweets and the source simply comes back empty.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote_plus

from ghostbrowse.browser.renderer import ExtractionRule, Renderer, RenderOptions
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item
from ghostbrowse.sources.base import RenderedSource

_TWEETS_RULE = ExtractionRule(
    name="x_tweets",
    script="""() => {
        const items = [];
        document.querySelectorAll('[data-testid="tweet"]').forEach(el => {
            const userEl = el.querySelector('[data-testid="User-Name"]');
            const textEl = el.querySelector('[data-testid="tweetText"]');
            const timeEl = el.querySelector('time');
            const linkEl = el.querySelector('a[href*="/status/"]');
            const stats = { likes: '0', retweets: '0', replies: '0' };
            el.querySelectorAll('[role="group"] button').forEach((btn, idx) => {
                const text = btn.textContent.trim();
                if (text && /^\\d/.test(text)) {
                    if (idx === 0) stats.replies = text;
                    else if (idx === 1) stats.retweets = text;
                    else if (idx === 2) stats.likes = text;
                }
            });
            el.querySelectorAll('[role="button"][aria-label]').forEach(btn => {
                const label = btn.getAttribute('aria-label') || '';
                const m = label.match(/([\\d,.KkMm]+)/);
                if (m) {
                    if (/like/i.test(label)) stats.likes = m[1];
                    else if (/repost|retweet/i.test(label)) stats.retweets = m[1];
                    else if (/repl/i.test(label)) stats.replies = m[1];
                }
            });
            if (textEl) items.push({
                user: userEl ? userEl.textContent.trim().split('\\n')[0] : '',
                text: textEl.textContent.trim(),
                time: timeEl ? timeEl.getAttribute('datetime') : null,
                url: linkEl ? `https://x.com${linkEl.getAttribute('href')}` : null,
                likes: stats.likes,
                retweets: stats.retweets,
                replies: stats.replies,
            });
        });
        return items;
    }""",
)


class TwitterProducer(RenderedSource):
    name = "twitter"
    resource_key = "x.com"

    def __init__(
        self,
        renderer: Optional[Renderer],
        limiter: Optional[AdmissionLimiter] = None,
    ) -> None:
        super().__init__(renderer, limiter)
        self.options = RenderOptions(
            timeout_ms=25_000,
            settle_ms=2_000,
            wait_for_selector='[data-testid="tweet"]',
            selector_timeout_ms=12_000,
        )

    async def search(self, query: str) -> list[Item]:
        url = f"https://x.com/search?q={quote_plus(query)}&src=typed_query&f=live"
        raw = await self._render(url, _TWEETS_RULE, self.options)
        return self._as_items(raw)
