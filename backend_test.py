import requests
import os
import sys
from datetime import datetime

class LeaderboardAPITester:
    def __init__(self, base_url=None):
        self.base_url = (base_url or os.environ.get("LEADERBOARD_API_URL", "http://localhost:8000/api")).rstrip("/")
        self.admin_token = None
        self.member_token = None
        self.request_id = None
        self.tests_run = 0
        self.tests_passed = 0
        self.test_results = []

    def log_test(self, name, success, details=""):
        """Log test result"""
        self.tests_run += 1
        if success:
            self.tests_passed += 1
            print(f"✅ {name}")
        else:
            print(f"❌ {name} - {details}")

        self.test_results.append({
            "test": name,
            "success": success,
            "details": details
        })

    def run_test(self, name, method, endpoint, expected_status, data=None, headers=None):
        """Run a single API test"""
        url = f"{self.base_url}/{endpoint}"
        test_headers = {'Content-Type': 'application/json'}
        if headers:
            test_headers.update(headers)

        try:
            if method == 'GET':
                response = requests.get(url, headers=test_headers, timeout=15)
            elif method == 'POST':
                response = requests.post(url, json=data, headers=test_headers, timeout=15)
            elif method == 'PUT':
                response = requests.put(url, json=data, headers=test_headers, timeout=15)
            elif method == 'DELETE':
                response = requests.delete(url, headers=test_headers, timeout=15)
            else:
                raise ValueError(f"Unsupported method {method}")

            success = response.status_code == expected_status
            details = f"Status: {response.status_code}"

            if not success:
                try:
                    error_data = response.json()
                    details += f", Error: {error_data.get('detail', 'Unknown error')}"
                except ValueError:
                    details += f", Response: {response.text[:100]}"

            self.log_test(name, success, details)
            return success, response.json() if success and response.content else {}

        except requests.RequestException as e:
            self.log_test(name, False, f"Exception: {str(e)}")
            return False, {}

    def test_health_endpoints(self):
        """Test basic health endpoints"""
        print("\n🔍 Testing Health Endpoints...")
        self.run_test("Root API endpoint", "GET", "", 200)
        self.run_test("Health check endpoint", "GET", "health", 200)

    def test_public_endpoints(self):
        """Test public endpoints that don't require auth"""
        print("\n🔍 Testing Public Endpoints...")
        success, response = self.run_test("Leaderboard", "GET", "leaderboard", 200)
        if success and len(response.get("entries", [])) > 10:
            self.log_test("Leaderboard top-10 truncation", False, "more than 10 entries without filters")
        self.run_test("Leaderboard revision", "GET", "leaderboard/revision", 200)
        self.run_test("Categories", "GET", "categories", 200)
        self.run_test("Competitions", "GET", "competitions", 200)

    def test_admin_login(self):
        """Test admin login"""
        print("\n🔍 Testing Admin Authentication...")
        admin_data = {
            "email": os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@example.com"),
            "password": os.environ.get("DEFAULT_ADMIN_PASSWORD", "admin123")
        }
        success, response = self.run_test("Admin login", "POST", "auth/login", 200, admin_data)
        if success and 'access_token' in response:
            self.admin_token = response['access_token']
            print(f"   Admin token obtained: {self.admin_token[:20]}...")
            return True
        return False

    def test_member_registration(self):
        """Test member registration"""
        print("\n🔍 Testing Member Registration...")
        timestamp = datetime.now().strftime("%H%M%S%f")
        test_data = {
            "email": f"member{timestamp}@example.com",
            "password": "testpass123",
            "full_name": f"Test Member {timestamp}",
            "org_unit": "Smoke Test Club"
        }
        success, response = self.run_test("Member registration", "POST", "auth/register", 200, test_data)
        if success and 'access_token' in response:
            self.member_token = response['access_token']
            print(f"   Member token obtained: {self.member_token[:20]}...")
            return True
        return False

    def test_member_endpoints(self):
        """Test member-specific endpoints"""
        if not self.member_token:
            print("\n❌ Skipping member tests - no member token")
            return

        print("\n🔍 Testing Member Endpoints...")
        headers = {'Authorization': f'Bearer {self.member_token}'}
        self.run_test("Get member profile", "GET", "me", 200, headers=headers)
        request_data = {
            "competition_title": f"Smoke Test Cup {datetime.now():%Y%m%d%H%M%S}",
            "category": "Smoke",
            "message": "Participated during the smoke test run"
        }
        success, response = self.run_test("Submit verification request", "POST", "requests", 201, request_data, headers)
        if success:
            self.request_id = response.get("id")
        self.run_test("List own requests", "GET", "me/requests", 200, headers=headers)
        self.run_test("Member blocked from admin queue", "GET", "admin/requests", 403, headers=headers)

    def test_admin_review(self):
        """Test the approval flow"""
        if not self.admin_token or not self.request_id:
            print("\n❌ Skipping admin review - missing admin token or request")
            return

        print("\n🔍 Testing Admin Review...")
        headers = {'Authorization': f'Bearer {self.admin_token}'}
        self.run_test("Admin pending queue", "GET", "admin/requests?status=pending", 200, headers=headers)
        self.run_test("Approve request", "POST", f"admin/requests/{self.request_id}/approve", 200, headers=headers)
        self.run_test("Approve twice is a conflict", "POST", f"admin/requests/{self.request_id}/approve", 409, headers=headers)
        self.run_test("Admin logs", "GET", "admin/logs", 200, headers=headers)

    def run_all_tests(self):
        """Run all tests in sequence"""
        print("🚀 Starting Leaderboard API Testing...")
        print(f"Testing against: {self.base_url}")

        self.test_health_endpoints()
        self.test_public_endpoints()
        admin_login_success = self.test_admin_login()
        self.test_member_registration()
        self.test_member_endpoints()
        if admin_login_success:
            self.test_admin_review()

        return self.print_summary()

    def print_summary(self):
        """Print test summary"""
        print(f"\n📊 Test Summary:")
        print(f"Tests run: {self.tests_run}")
        print(f"Tests passed: {self.tests_passed}")
        if self.tests_run:
            print(f"Success rate: {(self.tests_passed/self.tests_run*100):.1f}%")

        if self.tests_passed < self.tests_run:
            print(f"\n❌ Failed tests:")
            for result in self.test_results:
                if not result['success']:
                    print(f"  - {result['test']}: {result['details']}")

        return self.tests_passed == self.tests_run

def main():
    tester = LeaderboardAPITester()
    success = tester.run_all_tests()
    return 0 if success else 1

if __name__ == "__main__":
    sys.exit(main())
