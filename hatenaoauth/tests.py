import base64
import hashlib
import hmac
import io
import os
import re
import webbrowser
from unittest import TestCase
from unittest.mock import Mock, patch
from urllib.parse import unquote

import requests
from oauthlib.oauth1.rfc5849 import signature as oauthlib_signature
from requests_oauthlib import OAuth1

from . import settings, signing
from .client import HatenaOAuth
from .consent import BrowserConsent, CallbackConsent, ConsentChannel, StaticConsent
from .errors import (
    InsufficientSecret,
    InvalidRequest,
    InvalidResponse,
    PermissionDenied,
    RequestFailure,
)
from .flow import AuthorizationFlow, FlowState
from .functions import (
    REQUEST_TOKEN_FIELDS,
    authorize,
    complete,
    initiate,
    parse_token_response,
)
from .signing import OAuthSigner
from .store import TokenStore
from .tokens import AccessToken, ConsumerToken, RequestToken, Scope, SignatureContext

NONCE = "abcdefghijklmnopqrstuvwxyz012345"
TIMESTAMP = "1700000000"

CONSUMER = ConsumerToken("ck", "cs")
REQUEST_TOKEN_BODY = "oauth_token=T1&oauth_token_secret=S1&oauth_callback_confirmed=true"
ACCESS_TOKEN_BODY = (
    "oauth_token=T2&oauth_token_secret=S2&url_name=alice&display_name=Alice"
)
FEED_URL = "https://f.hatena.ne.jp/atom/feed"
POST_URL = "https://f.hatena.ne.jp/atom/post"


def make_response(status_code=200, body=""):
    response = requests.Response()
    response.status_code = status_code
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    return response


def make_session(*responses):
    session = Mock(spec=requests.Session)
    session.post.side_effect = list(responses)
    return session


def prepare(call):
    """
    Rebuild the request a mocked session was asked to send, with its auth
    applied, so the Authorization header can be inspected.
    """
    if len(call.args) == 2:
        method, url = call.args
    else:
        method, url = "POST", call.args[0]
    kwargs = dict(call.kwargs)
    kwargs.pop("timeout", None)
    return requests.Request(method, url, **kwargs).prepare()


def parse_header(header):
    if isinstance(header, bytes):
        header = header.decode("utf-8")
    assert header.startswith("OAuth ")
    return {
        key: unquote(value) for key, value in re.findall(r'(\w+)="([^"]*)"', header)
    }


def fixed_nonce():
    return patch.multiple(
        "hatenaoauth.signing",
        generate_token=Mock(return_value=NONCE),
        generate_timestamp=Mock(return_value=TIMESTAMP),
    )


class ParameterEncodingTest(TestCase):
    def context(self, oauth_params, url=POST_URL, body_params=()):
        return SignatureContext("POST", url, oauth_params, list(body_params))

    def test_unreserved_characters_are_kept(self):
        self.assertEqual(
            signing.authorization_header({"oauth_verifier": "a*b-c.d_e~f"}),
            'OAuth oauth_verifier="a%2Ab-c.d_e~f"',
        )

    def test_reserved_characters_are_escaped(self):
        self.assertEqual(
            signing.authorization_header({"oauth_verifier": "a b/c&d=e+f,g"}),
            'OAuth oauth_verifier="a%20b%2Fc%26d%3De%2Bf%2Cg"',
        )

    def test_utf8_is_escaped_per_byte(self):
        base = signing.base_string(self.context({}, body_params=[("title", "写真")]))
        self.assertTrue(base.endswith("&title%3D%25E5%2586%2599%25E7%259C%259F"))

    def test_printable_ascii_round_trips(self):
        printable = "".join(chr(i) for i in range(32, 127))
        fields = parse_header(
            signing.authorization_header({"oauth_verifier": printable})
        )
        self.assertEqual(fields["oauth_verifier"], printable)

    def test_parameters_sorted_regardless_of_insertion_order(self):
        expected = (
            "POST&https%3A%2F%2Ff.hatena.ne.jp%2Fatom%2Fpost&"
            "oauth_consumer_key%3Dy%26oauth_nonce%3Dx"
        )
        for params in (
            {"oauth_nonce": "x", "oauth_consumer_key": "y"},
            {"oauth_consumer_key": "y", "oauth_nonce": "x"},
        ):
            self.assertEqual(signing.base_string(self.context(params)), expected)

    def test_duplicate_keys_sorted_by_value(self):
        base = signing.base_string(
            self.context({}, body_params=[("b", "x"), ("a", "2"), ("a", "10")])
        )
        self.assertTrue(base.endswith("&a%3D10%26a%3D2%26b%3Dx"))

    def test_query_values_are_decoded_before_encoding(self):
        base = signing.base_string(self.context({}, url=POST_URL + "?t=a+b*"))
        self.assertTrue(base.endswith("&t%3Da%2520b%252A"))

    def test_oauth_values_are_encoded_as_given(self):
        base = signing.base_string(self.context({"oauth_verifier": "V%1"}))
        self.assertTrue(base.endswith("&oauth_verifier%3DV%25251"))

    def test_url_is_normalized(self):
        base = signing.base_string(
            self.context({}, url="HTTPS://F.Hatena.ne.jp:443/atom/Post?a=1#top")
        )
        self.assertEqual(
            base, "POST&https%3A%2F%2Ff.hatena.ne.jp%2Fatom%2FPost&a%3D1"
        )

    def test_non_default_port_is_kept(self):
        base = signing.base_string(self.context({}, url="http://example.com:8080"))
        self.assertTrue(base.startswith("POST&http%3A%2F%2Fexample.com%3A8080%2F&"))


class SignatureTest(TestCase):
    def setUp(self):
        self.context = SignatureContext(
            "post",
            POST_URL + "?a=1",
            {"oauth_consumer_key": "ck", "oauth_nonce": "n"},
            [("title", "x y")],
        )

    def test_base_string(self):
        self.assertEqual(
            signing.base_string(self.context),
            "POST&https%3A%2F%2Ff.hatena.ne.jp%2Fatom%2Fpost&"
            "a%3D1%26oauth_consumer_key%3Dck%26oauth_nonce%3Dn%26title%3Dx%2520y",
        )

    def test_signature_is_excluded_from_base_string(self):
        context = self.context._replace(
            oauth_params=dict(self.context.oauth_params, oauth_signature="sig")
        )
        self.assertEqual(
            signing.base_string(context), signing.base_string(self.context)
        )

    def test_secrets_are_escaped_into_the_key(self):
        expected = base64.b64encode(
            hmac.new(
                b"c%20s&t%26s",
                signing.base_string(self.context).encode("utf-8"),
                hashlib.sha1,
            ).digest()
        ).decode("ascii")
        self.assertEqual(signing.sign(self.context, "c s", "t&s"), expected)

    def test_missing_token_secret_signs_with_empty_one(self):
        self.assertEqual(
            signing.sign(self.context, "cs"), signing.sign(self.context, "cs", "")
        )

    def test_matches_oauthlib_primitives(self):
        context = SignatureContext(
            "POST",
            "HTTPS://F.Hatena.ne.jp:443/atom/post?a=1&t=a+b*",
            {"oauth_consumer_key": "ck", "oauth_verifier": "v w"},
            [("title", "x y")],
        )
        params = [
            ("a", "1"),
            ("t", "a b*"),
            ("title", "x y"),
            ("oauth_consumer_key", "ck"),
            ("oauth_verifier", "v w"),
        ]
        expected = oauthlib_signature.signature_base_string(
            "POST",
            "https://f.hatena.ne.jp/atom/post",
            oauthlib_signature.normalize_parameters(params),
        )
        self.assertEqual(signing.base_string(context), expected)
        self.assertEqual(
            signing.sign(context, "cs", "ts"),
            oauthlib_signature.sign_hmac_sha1(expected, "cs", "ts"),
        )

    def test_sign_is_hmac_sha1_of_base_string(self):
        expected = base64.b64encode(
            hmac.new(
                b"cs&ts",
                signing.base_string(self.context).encode("utf-8"),
                hashlib.sha1,
            ).digest()
        ).decode("ascii")
        self.assertEqual(signing.sign(self.context, "cs", "ts"), expected)

    def test_authorization_header(self):
        header = signing.authorization_header(
            {
                "oauth_signature": "a+b/c=",
                "oauth_consumer_key": "ck",
                "title": "not a protocol parameter",
            }
        )
        self.assertEqual(
            header, 'OAuth oauth_consumer_key="ck", oauth_signature="a%2Bb%2Fc%3D"'
        )

    def test_oauth_parameters(self):
        params = signing.oauth_parameters(
            "ck", token_key="T1", extra={"oauth_verifier": "V1"}
        )
        self.assertEqual(params["oauth_consumer_key"], "ck")
        self.assertEqual(params["oauth_signature_method"], "HMAC-SHA1")
        self.assertEqual(params["oauth_version"], "1.0")
        self.assertEqual(params["oauth_token"], "T1")
        self.assertEqual(params["oauth_verifier"], "V1")
        self.assertTrue(params["oauth_timestamp"].isdigit())

    def test_fresh_nonce_per_call(self):
        first = signing.oauth_parameters("ck")["oauth_nonce"]
        second = signing.oauth_parameters("ck")["oauth_nonce"]
        self.assertNotEqual(first, second)
        for nonce in (first, second):
            self.assertRegex(nonce, r"^[A-Za-z0-9]{32}$")

    def test_no_token_parameter_without_token(self):
        self.assertNotIn("oauth_token", signing.oauth_parameters("ck"))

    def test_body_parameters(self):
        form = signing.CONTENT_TYPE_FORM_URLENCODED
        self.assertEqual(
            signing.body_parameters("a=1&b=x+y", form), [("a", "1"), ("b", "x y")]
        )
        self.assertEqual(signing.body_parameters(b"a=1", form), [("a", "1")])
        self.assertEqual(signing.body_parameters("<entry/>", "application/xml"), [])
        self.assertEqual(signing.body_parameters(None, form), [])

    def test_malformed_form_body_is_invalid_request(self):
        form = signing.CONTENT_TYPE_FORM_URLENCODED
        with self.assertRaises(InvalidRequest):
            signing.body_parameters("a=b c", form)
        with self.assertRaises(InvalidRequest):
            OAuthSigner(CONSUMER).sign_request(
                "POST", POST_URL, body="a=%zz", content_type=form
            )

    def test_signing_is_deterministic(self):
        signer = OAuthSigner(CONSUMER, RequestToken("T1", "S1"))
        first = signer.sign_request("GET", FEED_URL, nonce=NONCE, timestamp=TIMESTAMP)
        second = signer.sign_request("GET", FEED_URL, nonce=NONCE, timestamp=TIMESTAMP)
        self.assertEqual(first, second)

        other = signer.sign_request("GET", FEED_URL, nonce="x" * 32, timestamp=TIMESTAMP)
        self.assertNotEqual(first[0], other[0])

    def test_header_carries_signature(self):
        signer = OAuthSigner(CONSUMER, AccessToken("AT", "AS", "alice", "Alice"))
        signature, header = signer.sign_request(
            "GET", FEED_URL, nonce=NONCE, timestamp=TIMESTAMP
        )
        fields = parse_header(header)
        self.assertEqual(fields["oauth_signature"], signature)
        self.assertEqual(fields["oauth_token"], "AT")
        self.assertEqual(fields["oauth_nonce"], NONCE)
        self.assertEqual(fields["oauth_timestamp"], TIMESTAMP)


class ReferenceSignatureTest(TestCase):
    """Signatures have to agree with requests-oauthlib's for the same input."""

    def reference_signature(self, request, **kwargs):
        auth = OAuth1(
            CONSUMER.key,
            client_secret=CONSUMER.secret,
            nonce=NONCE,
            timestamp=TIMESTAMP,
            **kwargs
        )
        prepared = auth(request.prepare())
        return parse_header(prepared.headers["Authorization"])["oauth_signature"]

    def our_signature(self, request, signer):
        with fixed_nonce():
            prepared = signer(request.prepare())
        return parse_header(prepared.headers["Authorization"])["oauth_signature"]

    def test_request_token_leg(self):
        request = requests.Request(
            "POST",
            settings.REQUEST_TOKEN_URL,
            data="scope=read_public%2Cwrite_public",
            headers={"Content-Type": signing.CONTENT_TYPE_FORM_URLENCODED},
        )
        signer = OAuthSigner(CONSUMER, oauth_params={"oauth_callback": "oob"})
        self.assertEqual(
            self.our_signature(request, signer),
            self.reference_signature(request, callback_uri="oob"),
        )

    def test_access_token_leg(self):
        request = requests.Request("POST", settings.ACCESS_TOKEN_URL)
        signer = OAuthSigner(
            CONSUMER, RequestToken("T1", "S1"), oauth_params={"oauth_verifier": "V1"}
        )
        self.assertEqual(
            self.our_signature(request, signer),
            self.reference_signature(
                request,
                resource_owner_key="T1",
                resource_owner_secret="S1",
                verifier="V1",
            ),
        )

    def test_get_with_query(self):
        request = requests.Request(
            "GET", FEED_URL, params={"page": "2", "tag": "a b*"}
        )
        signer = OAuthSigner(CONSUMER, AccessToken("AT", "AS", "alice", "Alice"))
        self.assertEqual(
            self.our_signature(request, signer),
            self.reference_signature(
                request, resource_owner_key="AT", resource_owner_secret="AS"
            ),
        )

    def test_post_with_form_body(self):
        request = requests.Request(
            "POST",
            POST_URL,
            data={"title": "Hello Ladies + Gentlemen, a signed OAuth request!"},
        )
        signer = OAuthSigner(CONSUMER, AccessToken("AT", "AS", "alice", "Alice"))
        self.assertEqual(
            self.our_signature(request, signer),
            self.reference_signature(
                request, resource_owner_key="AT", resource_owner_secret="AS"
            ),
        )

    def test_body_is_left_untouched(self):
        request = requests.Request("POST", POST_URL, data={"title": "x y"})
        signer = OAuthSigner(CONSUMER, AccessToken("AT", "AS", "alice", "Alice"))
        with fixed_nonce():
            prepared = signer(request.prepare())
        self.assertEqual(prepared.body, "title=x+y")


class TokenStoreTest(TestCase):
    def test_starts_empty(self):
        store = TokenStore()
        self.assertIsNone(store.request_token)
        self.assertIsNone(store.verifier)
        self.assertIsNone(store.access_token)

    def test_set_and_invalidate(self):
        store = TokenStore()
        store.request_token = RequestToken("T1", "S1")
        store.verifier = "V1"
        store.access_token = AccessToken("T2", "S2", "alice", "Alice")
        self.assertEqual(store.request_token, RequestToken("T1", "S1"))
        self.assertEqual(store.verifier, "V1")

        store.invalidate_request_token()
        store.invalidate_verifier()
        self.assertIsNone(store.request_token)
        self.assertIsNone(store.verifier)
        self.assertEqual(store.access_token.key, "T2")

        store.invalidate_access_token()
        self.assertIsNone(store.access_token)

    def test_access_token_is_replaced(self):
        store = TokenStore(AccessToken("OLD", "OLD", "alice", "Alice"))
        store.access_token = AccessToken("NEW", "NEW", "alice", "Alice")
        self.assertEqual(store.access_token.key, "NEW")

    def test_clear(self):
        store = TokenStore(AccessToken("T2", "S2", "alice", "Alice"))
        store.request_token = RequestToken("T1", "S1")
        store.verifier = "V1"
        store.clear()
        self.assertIsNone(store.request_token)
        self.assertIsNone(store.verifier)
        self.assertIsNone(store.access_token)


class ConsentTest(TestCase):
    url = "https://www.hatena.ne.jp/oauth/authorize?oauth_token=T1"
    token = RequestToken("T1", "S1")

    def browser_consent(self, line):
        return BrowserConsent(stdin=io.StringIO(line), stdout=io.StringIO())

    @patch("hatenaoauth.consent.webbrowser.open", return_value=True)
    def test_reads_verifier_after_opening_browser(self, mock_open):
        consent = self.browser_consent("V1\n")
        self.assertEqual(consent.obtain_verifier(self.url, self.token), "V1")
        mock_open.assert_called_once_with(self.url)
        self.assertIn(self.url, consent.stdout.getvalue())

    @patch("hatenaoauth.consent.webbrowser.open", return_value=True)
    def test_empty_line_falls_back_to_environment(self, mock_open):
        consent = self.browser_consent("\n")
        with patch.dict(os.environ, {settings.ENV_OAUTH_VERIFIER: "ENV1"}):
            self.assertEqual(consent.obtain_verifier(self.url, self.token), "ENV1")

    @patch("hatenaoauth.consent.webbrowser.open", return_value=True)
    def test_no_verifier_is_permission_denied(self, mock_open):
        with patch.dict(os.environ):
            os.environ.pop(settings.ENV_OAUTH_VERIFIER, None)
            with self.assertRaises(PermissionDenied):
                self.browser_consent("  \n").obtain_verifier(self.url, self.token)
            with self.assertRaises(PermissionDenied):
                self.browser_consent("").obtain_verifier(self.url, self.token)

    @patch(
        "hatenaoauth.consent.webbrowser.open",
        side_effect=webbrowser.Error("could not locate runnable browser"),
    )
    def test_browser_failure_falls_through_to_manual_entry(self, mock_open):
        consent = self.browser_consent("V1\n")
        self.assertEqual(consent.obtain_verifier(self.url, self.token), "V1")

    @patch("hatenaoauth.consent.webbrowser.open", return_value=False)
    def test_no_browser_falls_through_to_manual_entry(self, mock_open):
        consent = self.browser_consent("V1\n")
        self.assertFalse(consent.open_consent_url(self.url))
        self.assertEqual(consent.await_verifier(), "V1")

    def test_callback(self):
        consent = CallbackConsent(lambda: "V1")
        self.assertEqual(consent.obtain_verifier(self.url, self.token), "V1")

    def test_callback_failure_is_permission_denied(self):
        error = IOError("closed")
        consent = CallbackConsent(Mock(side_effect=error))
        with self.assertRaises(PermissionDenied) as cm:
            consent.obtain_verifier(self.url, self.token)
        self.assertIs(cm.exception.__cause__, error)

        with self.assertRaises(PermissionDenied):
            CallbackConsent(lambda: "").obtain_verifier(self.url, self.token)

    def test_static(self):
        self.assertEqual(
            StaticConsent("V1").obtain_verifier(self.url, self.token), "V1"
        )
        with self.assertRaises(PermissionDenied):
            StaticConsent("").obtain_verifier(self.url, self.token)


class FunctionsTest(TestCase):
    def test_initiate(self):
        session = make_session(make_response(body=REQUEST_TOKEN_BODY))
        token = initiate(
            session, CONSUMER, [Scope.WRITE_PUBLIC, Scope.READ_PUBLIC], timeout=3
        )
        self.assertEqual(token, RequestToken("T1", "S1"))

        call = session.post.call_args
        self.assertEqual(call.args, (settings.REQUEST_TOKEN_URL,))
        self.assertEqual(call.kwargs["data"], "scope=read_public%2Cwrite_public")
        self.assertEqual(
            call.kwargs["headers"],
            {"Content-Type": "application/x-www-form-urlencoded"},
        )
        self.assertEqual(call.kwargs["timeout"], 3)

        fields = parse_header(prepare(call).headers["Authorization"])
        self.assertEqual(fields["oauth_callback"], "oob")
        self.assertEqual(fields["oauth_consumer_key"], "ck")
        self.assertNotIn("oauth_token", fields)

    def test_initiate_missing_secret(self):
        session = make_session(make_response(body="oauth_token=T1"))
        with self.assertRaises(InvalidResponse):
            initiate(session, CONSUMER, [Scope.READ_PUBLIC])

    def test_initiate_rejected(self):
        session = make_session(make_response(401, "oauth_problem=signature_invalid"))
        with self.assertRaises(InvalidRequest) as cm:
            initiate(session, CONSUMER, [Scope.READ_PUBLIC])
        self.assertEqual(cm.exception.problem, "oauth_problem=signature_invalid")
        self.assertEqual(cm.exception.status_code, 401)

    def test_transport_failure(self):
        error = requests.exceptions.ConnectionError("connection reset")
        session = make_session(error)
        with self.assertRaises(RequestFailure) as cm:
            initiate(session, CONSUMER, [Scope.READ_PUBLIC])
        self.assertIs(cm.exception.error, error)
        self.assertIs(cm.exception.__cause__, error)

    def test_authorize(self):
        self.assertEqual(
            authorize(RequestToken("T1", "S1")),
            "https://www.hatena.ne.jp/oauth/authorize?oauth_token=T1",
        )

    def test_complete(self):
        session = make_session(make_response(body=ACCESS_TOKEN_BODY))
        token = complete(session, CONSUMER, RequestToken("T1", "S1"), "V1")
        self.assertEqual(token, AccessToken("T2", "S2", "alice", "Alice"))

        call = session.post.call_args
        self.assertEqual(call.args, (settings.ACCESS_TOKEN_URL,))
        fields = parse_header(prepare(call).headers["Authorization"])
        self.assertEqual(fields["oauth_token"], "T1")
        self.assertEqual(fields["oauth_verifier"], "V1")

    def test_complete_missing_url_name(self):
        session = make_session(
            make_response(body="oauth_token=T2&oauth_token_secret=S2&display_name=A")
        )
        with self.assertRaises(InvalidResponse):
            complete(session, CONSUMER, RequestToken("T1", "S1"), "V1")

    def test_complete_accepts_empty_display_name(self):
        session = make_session(
            make_response(
                body="oauth_token=T2&oauth_token_secret=S2&url_name=alice&display_name="
            )
        )
        token = complete(session, CONSUMER, RequestToken("T1", "S1"), "V1")
        self.assertEqual(token, AccessToken("T2", "S2", "alice", ""))

    def test_parse_rejects_empty_token(self):
        with self.assertRaises(InvalidResponse):
            parse_token_response(
                "oauth_token=&oauth_token_secret=S1", REQUEST_TOKEN_FIELDS
            )

    def test_parse_decodes_values(self):
        credentials = parse_token_response(
            "oauth_token=T2&oauth_token_secret=S%2F2&url_name=alice"
            "&display_name=%E3%81%82",
            ("oauth_token", "display_name"),
        )
        self.assertEqual(credentials["oauth_token_secret"], "S/2")
        self.assertEqual(credentials["display_name"], "あ")

    def test_parse_rejects_non_form_body(self):
        with self.assertRaises(InvalidResponse) as cm:
            parse_token_response("<html>error</html>", ("oauth_token",))
        self.assertEqual(cm.exception.response, "<html>error</html>")


class AuthorizationFlowTest(TestCase):
    def setUp(self):
        self.store = TokenStore()
        self.consent = Mock(spec=ConsentChannel)
        self.consent.obtain_verifier.return_value = "V1"

    def make_flow(self, *responses):
        self.session = make_session(*responses)
        return AuthorizationFlow(
            CONSUMER,
            [Scope.READ_PUBLIC, Scope.WRITE_PUBLIC],
            self.store,
            self.consent,
            self.session,
        )

    def test_full_flow(self):
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        self.assertEqual(flow.state, FlowState.IDLE)

        token = flow.obtain()

        self.assertEqual(token, AccessToken("T2", "S2", "alice", "Alice"))
        self.assertEqual(flow.state, FlowState.AUTHORIZED)
        self.assertEqual(self.store.access_token, token)
        self.assertIsNone(self.store.request_token)
        self.assertIsNone(self.store.verifier)
        self.assertEqual(self.session.post.call_count, 2)
        self.consent.obtain_verifier.assert_called_once_with(
            "https://www.hatena.ne.jp/oauth/authorize?oauth_token=T1",
            RequestToken("T1", "S1"),
        )

    def test_request_token_obtained(self):
        flow = self.make_flow(make_response(body=REQUEST_TOKEN_BODY))
        flow.fetch_request_token()
        self.assertEqual(flow.state, FlowState.REQUEST_TOKEN_OBTAINED)
        self.assertEqual(self.store.request_token, RequestToken("T1", "S1"))
        self.assertEqual(
            self.session.post.call_args.kwargs["data"],
            "scope=read_public%2Cwrite_public",
        )

    def test_consent_runs_with_request_token_stored(self):
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        seen = []

        def obtain_verifier(url, token):
            seen.append((flow.state, self.store.request_token))
            return "V1"

        self.consent.obtain_verifier.side_effect = obtain_verifier
        flow.obtain()
        self.assertEqual(
            seen, [(FlowState.CONSENT_PENDING, RequestToken("T1", "S1"))]
        )

    def test_access_token_leg_signs_token_and_verifier(self):
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        flow.obtain()

        with patch("hatenaoauth.signing.sign", wraps=signing.sign) as mock_sign:
            prepare(self.session.post.call_args_list[1])
        context = mock_sign.call_args.args[0]
        self.assertEqual(mock_sign.call_args.args[2], "S1")

        base = signing.base_string(context)
        self.assertIn("oauth_token%3DT1", base)
        self.assertIn("oauth_verifier%3DV1", base)

    def test_cached_token_skips_network(self):
        cached = AccessToken("AT", "AS", "alice", "Alice")
        self.store.access_token = cached
        flow = self.make_flow()

        self.assertEqual(flow.obtain(), cached)
        self.assertEqual(flow.obtain(), cached)
        self.assertEqual(flow.state, FlowState.AUTHORIZED)
        self.session.post.assert_not_called()
        self.consent.obtain_verifier.assert_not_called()

    def test_second_obtain_uses_cache(self):
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        first = flow.obtain()
        self.assertEqual(self.session.post.call_count, 2)
        self.assertEqual(flow.obtain(), first)
        self.assertEqual(self.session.post.call_count, 2)

    def test_force_runs_every_leg(self):
        self.store.access_token = AccessToken("AT", "AS", "alice", "Alice")
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )

        token = flow.obtain(force=True)

        self.assertEqual(token.key, "T2")
        self.assertEqual(self.store.access_token.key, "T2")
        self.assertEqual(self.session.post.call_count, 2)
        self.consent.obtain_verifier.assert_called_once()

    def test_stale_request_token_is_not_reused(self):
        self.store.request_token = RequestToken("OLD", "OLD")
        self.store.verifier = "OLDV"
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        flow.obtain()

        self.assertEqual(self.session.post.call_count, 2)
        fields = parse_header(
            prepare(self.session.post.call_args_list[1]).headers["Authorization"]
        )
        self.assertEqual(fields["oauth_token"], "T1")
        self.assertEqual(fields["oauth_verifier"], "V1")

    def test_missing_url_name_leaves_store_unset(self):
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body="oauth_token=T2&oauth_token_secret=S2&display_name=A"),
        )
        with self.assertRaises(InvalidResponse) as cm:
            flow.obtain()
        self.assertIsNone(self.store.access_token)
        self.assertEqual(flow.state, FlowState.FAILED)
        self.assertIs(flow.failure, cm.exception)

    def test_consent_failure(self):
        self.consent.obtain_verifier.side_effect = PermissionDenied()
        flow = self.make_flow(make_response(body=REQUEST_TOKEN_BODY))
        with self.assertRaises(PermissionDenied):
            flow.obtain()
        self.assertEqual(flow.state, FlowState.FAILED)
        self.assertEqual(self.session.post.call_count, 1)
        self.assertIsNone(self.store.access_token)

    def test_empty_verifier_is_permission_denied(self):
        self.consent.obtain_verifier.return_value = ""
        flow = self.make_flow(make_response(body=REQUEST_TOKEN_BODY))
        with self.assertRaises(PermissionDenied):
            flow.obtain()
        self.assertEqual(self.session.post.call_count, 1)

    def test_rejected_access_token_request(self):
        flow = self.make_flow(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(401, "oauth_problem=token_rejected"),
        )
        with self.assertRaises(InvalidRequest) as cm:
            flow.obtain()
        self.assertEqual(cm.exception.problem, "oauth_problem=token_rejected")
        self.assertEqual(flow.state, FlowState.FAILED)

    def test_failed_flow_can_start_over(self):
        flow = self.make_flow(
            make_response(500, "oops"),
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        with self.assertRaises(InvalidRequest):
            flow.obtain()
        self.assertEqual(flow.obtain().key, "T2")
        self.assertEqual(flow.state, FlowState.AUTHORIZED)
        self.assertIsNone(flow.failure)


class HatenaOAuthTest(TestCase):
    cached = ("AT", "AS", "alice")

    def make_client(self, *responses, **kwargs):
        self.session = make_session(*responses)
        self.session.request.return_value = make_response(body="<feed/>")
        kwargs.setdefault("consent", StaticConsent("V1"))
        return HatenaOAuth(
            "ck", "cs", [Scope.READ_PUBLIC], session=self.session, **kwargs
        )

    def test_missing_consumer_credential(self):
        session = Mock(spec=requests.Session)
        with self.assertRaises(InsufficientSecret):
            HatenaOAuth("", "cs", [Scope.READ_PUBLIC], session=session)
        with self.assertRaises(InsufficientSecret):
            HatenaOAuth("ck", None, [Scope.READ_PUBLIC], session=session)
        self.assertEqual(session.mock_calls, [])

    def test_bootstrap_access_token(self):
        client = self.make_client(access_token=self.cached)
        self.assertEqual(
            client.get_access_token(), AccessToken("AT", "AS", "alice", "alice")
        )

        response = client.get(FEED_URL, params={"page": "2"})

        self.assertIs(response, self.session.request.return_value)
        self.session.post.assert_not_called()
        call = self.session.request.call_args
        self.assertEqual(call.args, ("GET", FEED_URL))
        self.assertEqual(call.kwargs["params"], {"page": "2"})
        fields = parse_header(prepare(call).headers["Authorization"])
        self.assertEqual(fields["oauth_token"], "AT")

    def test_blank_bootstrap_access_token_is_ignored(self):
        for token in (("", "", ""), ("AT", "", "alice"), ("AT", "AS", "", "Alice")):
            client = self.make_client(access_token=token)
            self.assertIsNone(client.store.access_token)

        client = self.make_client(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
            access_token=("", "", ""),
        )
        self.assertEqual(
            client.get_access_token(), AccessToken("T2", "S2", "alice", "Alice")
        )
        self.assertEqual(self.session.post.call_count, 2)

    def test_bootstrap_access_token_of_wrong_length(self):
        for token in (("AT", "AS"), ("AT", "AS", "alice", "Alice", "extra")):
            with self.assertRaises(InsufficientSecret):
                self.make_client(access_token=token)

    def test_get_authorizes_first(self):
        client = self.make_client(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
        )
        client.get(FEED_URL)

        self.assertEqual(self.session.post.call_count, 2)
        fields = parse_header(
            prepare(self.session.request.call_args).headers["Authorization"]
        )
        self.assertEqual(fields["oauth_token"], "T2")

    def test_forced_get_reruns_authorization(self):
        client = self.make_client(
            make_response(body=REQUEST_TOKEN_BODY),
            make_response(body=ACCESS_TOKEN_BODY),
            access_token=self.cached,
        )
        client.get(FEED_URL, force=True)

        self.assertEqual(self.session.post.call_count, 2)
        self.assertEqual(client.store.access_token.key, "T2")
        fields = parse_header(
            prepare(self.session.request.call_args).headers["Authorization"]
        )
        self.assertEqual(fields["oauth_token"], "T2")

    def test_post_signs_form_body(self):
        client = self.make_client(access_token=self.cached)
        client.post(POST_URL, data={"title": "x"})

        call = self.session.request.call_args
        self.assertEqual(call.args, ("POST", POST_URL))
        with patch("hatenaoauth.signing.sign", wraps=signing.sign) as mock_sign:
            prepare(call)
        self.assertEqual(mock_sign.call_args.args[0].body_params, [("title", "x")])

    def test_post_does_not_sign_xml_body(self):
        client = self.make_client(access_token=self.cached)
        client.post(
            POST_URL,
            data="<entry/>",
            headers={"Content-Type": "application/x.atom+xml"},
        )

        call = self.session.request.call_args
        self.assertEqual(call.kwargs["data"], "<entry/>")
        with patch("hatenaoauth.signing.sign", wraps=signing.sign) as mock_sign:
            prepare(call)
        self.assertEqual(mock_sign.call_args.args[0].body_params, [])

    def test_timeouts(self):
        client = self.make_client(access_token=self.cached, timeout=5)
        client.get(FEED_URL)
        self.assertEqual(self.session.request.call_args.kwargs["timeout"], 5)
        client.post(POST_URL, data={"title": "x"}, timeout=60)
        self.assertEqual(self.session.request.call_args.kwargs["timeout"], 60)

    def test_default_timeout(self):
        client = self.make_client(access_token=self.cached)
        client.get(FEED_URL)
        self.assertEqual(
            self.session.request.call_args.kwargs["timeout"], settings.DEFAULT_TIMEOUT
        )

    def test_error_status_is_returned(self):
        client = self.make_client(access_token=self.cached)
        self.session.request.return_value = make_response(401, "unauthorized")
        response = client.get(FEED_URL)
        self.assertEqual(response.status_code, 401)

    def test_transport_failure(self):
        client = self.make_client(access_token=self.cached)
        error = requests.exceptions.Timeout("timed out")
        self.session.request.side_effect = error
        with self.assertRaises(RequestFailure) as cm:
            client.get(FEED_URL)
        self.assertIs(cm.exception.error, error)

    def test_failed_authorization_sends_nothing(self):
        client = self.make_client(make_response(403, "denied"))
        with self.assertRaises(InvalidRequest):
            client.get(FEED_URL)
        self.session.request.assert_not_called()

    def test_consent_choices(self):
        self.assertIsInstance(
            self.make_client(consent=None, verifier="V1").consent, StaticConsent
        )
        self.assertIsInstance(
            self.make_client(consent=lambda: "V1").consent, CallbackConsent
        )
        self.assertIsInstance(self.make_client(consent=None).consent, BrowserConsent)
        with self.assertRaises(TypeError):
            self.make_client(consent="V1")

    def test_context_manager_closes_session(self):
        with self.make_client() as client:
            self.assertIsInstance(client, HatenaOAuth)
        self.session.close.assert_called_once_with()


class SettingsTest(TestCase):
    def test_number_from_environment(self):
        with patch.dict(os.environ, {"HATENA_OAUTH_TIMEOUT": "5"}):
            self.assertEqual(settings.float_from_env("HATENA_OAUTH_TIMEOUT", 30), 5.0)

    def test_unset_number_uses_default(self):
        with patch.dict(os.environ):
            os.environ.pop("HATENA_OAUTH_TIMEOUT", None)
            self.assertEqual(settings.float_from_env("HATENA_OAUTH_TIMEOUT", 30), 30.0)

    def test_malformed_number_uses_default(self):
        with patch.dict(os.environ, {"HATENA_OAUTH_TIMEOUT": "soon"}):
            with self.assertLogs("hatenaoauth.settings", level="WARNING"):
                value = settings.float_from_env("HATENA_OAUTH_TIMEOUT", 30)
        self.assertEqual(value, 30.0)

    @patch("hatenaoauth.settings.logging.config.dictConfig")
    def test_configure_logging(self, mock_dict_config):
        settings.configure_logging()
        mock_dict_config.assert_called_once_with(settings.LOGGING)
        self.assertIn("hatenaoauth", settings.LOGGING["loggers"])
