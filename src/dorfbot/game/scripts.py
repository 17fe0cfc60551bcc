"""In-page JavaScript used for DOM mutations (clicks, form fills).

Reads go through the selectolax extractors; these functions only act on the
page and report what they did as plain serializable values.
"""

from __future__ import annotations

from dorfbot.core.browser_client import BrowserClient

NORMALIZE_JS = """
const normalize = (txt) => String(txt || '')
    .toLowerCase()
    .normalize('NFD')
    .replace(/[\\u0300-\\u036f]/g, '')
    .replace(/\\s+/g, ' ')
    .trim();
const fire = (input) => {
    input.dispatchEvent(new Event('input', { bubbles: true }));
    input.dispatchEvent(new Event('change', { bubbles: true }));
    input.dispatchEvent(new Event('blur', { bubbles: true }));
};
"""

CLICK_TEXT_JS = """({ selector, phrases, exact }) => {
""" + NORMALIZE_JS + """
    const wanted = phrases.map(normalize).filter(Boolean);
    for (const el of Array.from(document.querySelectorAll(selector))) {
        const t = normalize(el.textContent || el.innerText || el.value);
        if (!t) continue;
        const hit = wanted.some(w => t === w || (!exact && t.includes(w)));
        if (hit) {
            el.click();
            return true;
        }
    }
    return false;
}"""

UPGRADE_JS = """() => {
""" + NORMALIZE_JS + """
    const keywords = ['mejora', 'mejorar', 'upgrade', 'construir', 'ampliar', 'nivel', 'level', 'build'];
    const classKeywords = ['build', 'upgrade', 'contract'];
    const denied = ['prolong', 'proteger', 'protecc', 'protection', 'plus', 'premium', 'activar',
        'comprar', 'confirmar', 'cancelar', 'aventura', 'mision', 'adventure', 'prorrogar',
        'npc', 'intercambiar'];

    const scopes = [
        document.querySelector('.upgradeButtonsContainer'),
        document.querySelector('.buildAction'),
        document.querySelector('#contract'),
        document.querySelector('.upgradeButtons'),
        document.querySelector('.buildWrapper'),
        document.querySelector('.buildingDetails'),
        document,
    ].filter(Boolean);

    const seen = new Set();
    const candidates = [];
    for (const scope of scopes) {
        for (const el of scope.querySelectorAll('button, input[type="submit"], a, [role="button"]')) {
            if (seen.has(el)) continue;
            seen.add(el);
            candidates.push(el);
        }
    }

    const actionUrl = (el) => {
        const href = el.getAttribute('href');
        if (href && href.includes('action=build')) return href;
        const onclick = el.getAttribute('onclick');
        if (onclick && onclick.includes('action=build')) {
            const m = onclick.match(/(?:href|location\\.href)\\s*=\\s*'([^']+)'/i);
            if (m && m[1]) return m[1];
        }
        return null;
    };

    for (const btn of candidates) {
        const text = normalize(btn.innerText || btn.value || '');
        const classes = normalize(typeof btn.className === 'string' ? btn.className : '');
        if (btn.disabled || classes.includes('disabled')) continue;
        if (btn.getAttribute('aria-disabled') === 'true') continue;
        if (classes.includes('gold')) continue;
        if (denied.some(w => text.includes(w))) continue;

        const byText = keywords.some(k => text.includes(k));
        const byClass = classKeywords.some(k => classes.includes(k));
        if (!byText && !byClass) continue;

        const url = actionUrl(btn);
        if (url) return { success: true, url };
        btn.click();
        return { success: true, url: null };
    }
    if (document.querySelector('.queueFull, .buildingQueueFull')) return { success: false, reason: 'queue_full' };
    return { success: false, reason: 'not_enough_resources' };
}"""

CHOOSE_BUILDING_JS = """(rawName) => {
""" + NORMALIZE_JS + """
    const wanted = normalize(rawName);
    if (!wanted) return false;
    for (const a of document.querySelectorAll('a[href*="gid="]')) {
        const t = normalize(a.textContent || a.innerText);
        if (t && (t === wanted || t.includes(wanted))) {
            a.click();
            return true;
        }
    }
    const cards = document.querySelectorAll('.buildingWrapper, .building, .buildNewBuilding, .newBuilding, li, .content, #content');
    for (const card of cards) {
        const t = normalize(card.textContent);
        if (!t || !(t === wanted || t.includes(wanted))) continue;
        const link = card.querySelector('a[href*="gid="]');
        if (link) {
            link.click();
            return true;
        }
    }
    return false;
}"""

TRAIN_JS = """({ index, name, quantity }) => {
""" + NORMALIZE_JS + """
    const inputs = Array.from(document.querySelectorAll('input[name^="t"], input[data-unitid], input[data-unit]'))
        .filter(i => /^t\\d+$/.test(i.getAttribute('name') || '') || i.getAttribute('data-unitid') || i.getAttribute('data-unit'));
    const rowOf = (i) => i.closest('tr') || i.closest('.unit') || i.closest('.trainUnits') ||
        i.closest('.textList') || i.closest('.unitWrapper') || i.parentElement;
    const unitIndex = (i) => {
        const m = (i.getAttribute('name') || '').match(/^t(\\d+)$/);
        if (m) return parseInt(m[1], 10);
        const unit = i.getAttribute('data-unitid') || i.getAttribute('data-unit');
        return unit && /^\\d+$/.test(unit) ? parseInt(unit, 10) : null;
    };

    const wanted = normalize(name);
    const input = inputs.find(i => {
        if (index !== null && index !== undefined) return unitIndex(i) === index;
        const row = rowOf(i);
        const img = row ? row.querySelector('img') : null;
        const text = normalize(((row && row.innerText) || '') + ' ' + ((img && img.alt) || ''));
        return wanted && text.includes(wanted);
    });
    if (!input) return { success: false, reason: 'troop_not_found' };

    input.scrollIntoView && input.scrollIntoView({ block: 'center' });
    input.value = String(quantity);
    fire(input);

    const form = input.closest('form') || document.querySelector('form[action*="train"]');
    if (!form) return { success: false, reason: 'form_not_found' };

    const buttons = Array.from(form.querySelectorAll('button, input[type="submit"]'));
    const btn = buttons.find(b => {
        if (b.disabled) return false;
        const label = normalize(b.innerText || b.value);
        const cls = normalize(typeof b.className === 'string' ? b.className : '');
        if (cls.includes('starttraining')) return true;
        return ['entrenar', 'train', 'reclutar', 'formacion', 'formation'].some(w => label.includes(w));
    }) || buttons.find(b => !b.disabled);
    if (!btn) return { success: false, reason: 'submit_button_not_found' };

    const isSubmit = (btn.getAttribute('type') || '').toLowerCase() === 'submit';
    if (typeof form.requestSubmit === 'function') {
        if (isSubmit) form.requestSubmit(btn);
        else form.requestSubmit();
    } else {
        btn.click();
    }
    return { success: true, trained: quantity };
}"""

SELECT_OPTION_JS = """(rawName) => {
""" + NORMALIZE_JS + """
    const wanted = normalize(rawName);
    for (const sel of document.querySelectorAll('select')) {
        const match = Array.from(sel.querySelectorAll('option')).find(o => {
            const t = normalize(o.textContent);
            return t === wanted || t.includes(wanted);
        });
        if (match) {
            sel.value = match.value;
            sel.dispatchEvent(new Event('change', { bubbles: true }));
            return true;
        }
    }
    return false;
}"""

FILL_LIST_NAME_JS = """(name) => {
""" + NORMALIZE_JS + """
    const input = document.querySelector('input[name*="name" i]') ||
        document.querySelector('input[id*="name" i]') ||
        document.querySelector('input[placeholder*="nombre" i]') ||
        document.querySelector('input[placeholder*="name" i]');
    if (!input) return false;
    input.focus();
    input.value = String(name);
    fire(input);
    return true;
}"""

FILL_TARGET_JS = """({ x, y, name }) => {
""" + NORMALIZE_JS + """
    const xInput = document.querySelector('#xCoord, input[name="xCoord"], input[name="x"], input[name="xcoord"], input[id*="xCoord"]') ||
        document.querySelector('input[placeholder*="x" i]');
    const yInput = document.querySelector('#yCoord, input[name="yCoord"], input[name="y"], input[name="ycoord"], input[id*="yCoord"]') ||
        document.querySelector('input[placeholder*="y" i]');
    if (!xInput || !yInput) return false;
    for (const [input, value] of [[xInput, x], [yInput, y]]) {
        input.focus();
        input.value = String(value);
        fire(input);
    }
    if (name) {
        const nameInput = document.querySelector('input[name*="name" i], input[id*="name" i]') ||
            document.querySelector('input[placeholder*="nombre" i], input[placeholder*="name" i]');
        if (nameInput) {
            nameInput.value = String(name);
            fire(nameInput);
        }
    }
    return true;
}"""

SET_TROOPS_JS = """({ counts }) => {
""" + NORMALIZE_JS + """
    let updated = 0;
    for (const row of document.querySelectorAll('tr, .raidListEntry, .farmListEntry, .slotRow')) {
        for (const [unit, count] of Object.entries(counts)) {
            const n = unit.replace(/^t/, '');
            const input = row.querySelector(`input[name*="t${n}"]`) ||
                row.querySelector(`input[name*="troops[${n}]"]`) ||
                row.querySelector(`input[data-unit="${n}"]`) ||
                row.querySelector(`input[class*="u${n}"]`);
            if (!input) continue;
            if (String(input.value || '').trim() === String(count)) continue;
            input.focus();
            input.value = String(count);
            fire(input);
            updated += 1;
        }
    }
    return updated;
}"""

START_ALL_JS = """() => {
""" + NORMALIZE_JS + """
    const wanted = ['comenzar todas las listas de vacas', 'comenzar todas las listas',
        'start all farm lists', 'start all raid lists'];
    for (const el of document.querySelectorAll('button, a, input[type="submit"]')) {
        const t = normalize(el.textContent || el.innerText || el.value);
        if (!t || !wanted.some(w => t.includes(w))) continue;
        const cls = normalize(typeof el.className === 'string' ? el.className : '');
        if (cls.includes('green') || cls.includes('start') || el.tagName.toLowerCase() === 'button') {
            el.click();
            return true;
        }
    }
    for (const el of document.querySelectorAll('button.green, .green button, a.green, .green a')) {
        const t = normalize(el.textContent || el.innerText || el.value);
        if (t.includes('comenzar') || t.includes('start')) {
            el.click();
            return true;
        }
    }
    return false;
}"""


async def click_text(
    browser: BrowserClient,
    phrases: list[str] | tuple[str, ...],
    selector: str = "a, button",
    exact: bool = False,
) -> bool:
    """Click the first element whose normalized text contains one of the phrases."""
    clicked = await browser.evaluate(
        CLICK_TEXT_JS, {"selector": selector, "phrases": list(phrases), "exact": exact}
    )
    return bool(clicked)
