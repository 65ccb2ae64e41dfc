from demokit.weather.messages import CommandArgs, CommandResponse, MessageService, Post


class FakeHost:
    def __init__(self, fail_create=False):
        self.ephemeral = []
        self.created = []
        self.fail_create = fail_create

    def send_ephemeral_post(self, user_id, post):
        self.ephemeral.append((user_id, post))

    def create_post(self, post):
        if self.fail_create:
            raise RuntimeError("store unavailable")
        self.created.append(post)


def test_ephemeral_response_posts_to_user_as_bot():
    host = FakeHost()
    service = MessageService(host, "bot-id")
    response = service.send_ephemeral_response(CommandArgs(channel_id="chan", user_id="alice"), "hello")
    assert response == CommandResponse(response_type="ephemeral", text="")
    assert host.created == []
    ((user_id, post),) = host.ephemeral
    assert user_id == "alice"
    assert post == Post(channel_id="chan", message="hello", user_id="bot-id")


def test_public_response_creates_post_as_bot():
    host = FakeHost()
    service = MessageService(host, "bot-id")
    post = Post(channel_id="chan", props={"attachments": []})
    response = service.send_public_response(CommandArgs(channel_id="chan", user_id="alice"), post)
    assert response.response_type == "ephemeral"
    assert response.text == ""
    assert host.ephemeral == []
    assert host.created == [Post(channel_id="chan", user_id="bot-id", props={"attachments": []})]


def test_public_response_survives_host_failure():
    host = FakeHost(fail_create=True)
    service = MessageService(host, "bot-id")
    post = Post(channel_id="chan")
    response = service.send_public_response(CommandArgs(user_id="alice"), post)
    assert response.text == ""
    assert post.user_id == "bot-id"


def test_bot_user_id_is_exposed():
    assert MessageService(FakeHost(), "bot-id").bot_user_id == "bot-id"