import pytest

from app.services import llm
from app import tools


@pytest.fixture
def echo_llm(monkeypatch):
    calls = []

    def fake_reply(history):
        calls.append(list(history))
        return f"echo: {history[-1]['content']}"

    monkeypatch.setattr(llm, 'generate_reply', fake_reply)
    return calls


def test_requires_token(client):
    assert client.get('/api/chats').status_code == 401
    assert client.get('/api/chats', headers={'Authorization': 'Bearer not-a-jwt'}).status_code == 403


def test_chat_creates_thread_and_stores_both_turns(client, signup, echo_llm):
    headers = signup('alice')
    r = client.post('/api/chat', json={'message': 'Hello, how are you?'}, headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert data['response'] == 'echo: Hello, how are you?'
    assert data['username'] == 'alice'
    chat_id = data['chatId']
    assert chat_id.startswith('chat_')

    r2 = client.post('/api/chat', json={'message': 'second', 'chatId': chat_id}, headers=headers)
    assert r2.json()['chatId'] == chat_id
    # history for the model carries the earlier turns of this chat only
    assert [m['content'] for m in echo_llm[-1]] == ['Hello, how are you?', 'echo: Hello, how are you?', 'second']

    messages = client.get(f'/api/chat/{chat_id}', headers=headers).json()['messages']
    assert [m['role'] for m in messages] == ['user', 'assistant', 'user', 'assistant']

    chats = client.get('/api/chats', headers=headers).json()['chats']
    assert len(chats) == 1
    assert chats[0]['title'] == 'Hello, how are you?'
    assert chats[0]['messageCount'] == 4


def test_empty_message_rejected(client, signup, echo_llm):
    headers = signup('alice')
    assert client.post('/api/chat', json={'message': '   '}, headers=headers).status_code == 400
    assert echo_llm == []


def test_soft_delete_chat(client, signup, store, echo_llm):
    headers = signup('alice')
    keep = client.post('/api/chat', json={'message': 'keep me'}, headers=headers).json()['chatId']
    gone = client.post('/api/chat', json={'message': 'delete me'}, headers=headers).json()['chatId']

    r = client.post(f'/api/chats/{gone}/delete', headers=headers)
    assert r.status_code == 200
    assert client.post(f'/api/chats/{gone}/delete', headers=headers).status_code == 200

    assert [c['chatId'] for c in client.get('/api/chats', headers=headers).json()['chats']] == [keep]
    assert client.get(f'/api/chat/{gone}', headers=headers).status_code == 410
    # still on disk
    assert len(store.get_conversations('alice', gone)) == 2
    assert len(store.get_deleted_chats('alice')) == 1


def test_chats_are_per_user(client, signup, echo_llm):
    alice = signup('alice')
    bob = signup('bob')
    client.post('/api/chat', json={'message': 'private'}, headers=alice)
    assert client.get('/api/chats', headers=bob).json()['chats'] == []


def test_public_chat_stores_nothing(client, store, echo_llm):
    r = client.post('/api/public-chat', json={
        'message': ' hi there ',
        'history': [{'role': 'user', 'content': 'earlier'}, {'role': 'system', 'content': 'ignored'}, 'junk'],
    })
    assert r.status_code == 200
    assert r.json()['response'] == 'echo: hi there'
    assert [m['content'] for m in echo_llm[-1]] == ['earlier', 'hi there']
    assert list(store.root.iterdir()) == []
    assert client.post('/api/public-chat', json={}).status_code == 400


def test_fallback_reply_without_api_key(client, signup):
    assert not llm.llm_enabled()
    headers = signup('alice')
    r = client.post('/api/chat', json={'message': 'I need help, this is a crisis'}, headers=headers)
    assert r.status_code == 200
    assert '988' in r.json()['response']


def test_fallback_routes_by_keyword():
    assert tools.fallback_response('I feel so anxious') == tools.ANXIOUS_REPLY
    assert tools.fallback_response('so tired today') == tools.TIRED_REPLY
    assert tools.fallback_response('I am sad') in tools.SAD_REPLIES
    assert tools.fallback_response('hello') in tools.DEFAULT_REPLIES


def test_mood_entries(client, signup):
    headers = signup('alice')
    r = client.post('/api/mood', json={'mood': 4, 'note': 'ok, fine', 'timestamp': '2024-01-01T00:00:00Z'}, headers=headers)
    assert r.status_code == 200
    entry = r.json()['entry']
    assert entry['mood'] == '4'
    assert entry['note'] == 'ok, fine'

    assert client.post('/api/mood', json={'mood': '7'}, headers=headers).status_code == 400
    assert client.post('/api/mood', json={'note': 'no mood'}, headers=headers).status_code == 400
    assert client.post('/api/mood', json={'mood': '2'}, headers=headers).status_code == 200

    entries = client.get('/api/mood', headers=headers).json()['entries']
    assert [e['mood'] for e in entries] == ['4', '2']
    assert entries[1]['note'] == ''


def test_journal_entries(client, signup):
    headers = signup('alice')
    assert client.post('/api/journal', json={'content': ''}, headers=headers).status_code == 400
    text = 'Dear diary,\nToday was "fine".'
    assert client.post('/api/journal', json={'content': text}, headers=headers).status_code == 200
    entries = client.get('/api/journal', headers=headers).json()['entries']
    assert [e['content'] for e in entries] == [text]


def test_history_counts_after_activity(client, signup, echo_llm):
    headers = signup('alice')
    client.post('/api/chat', json={'message': 'hi'}, headers=headers)
    client.post('/api/mood', json={'mood': 3}, headers=headers)
    r = client.post('/api/auth/login', json={'username': 'alice', 'password': 'secret123'})
    assert r.json()['history'] == {'conversations': 2, 'moodEntries': 1, 'journalEntries': 0}


def test_resources_and_health(client):
    res = client.get('/api/resources').json()
    assert res['crisis']['nationalSuicidePrevention']['phone'] == '988'
    health = client.get('/api/health').json()
    assert health['status'] == 'ok'
